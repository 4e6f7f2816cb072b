"""Tests for visibility classification and context assembly."""

import random

import pytest

from notebook.access import Visibility, classify, document_preview
from notebook.constants import CONFIDENTIAL_FOLDER_ID, GENERAL_FOLDER_ID, LOCKED_PREVIEW
from notebook.context import ANONYMOUS_WITHHELD, WITHHELD_REASON, assemble_context

from conftest import make_document


def test_classify_locks_confidential_until_authorized():
    secret = make_document("s", "Salary.txt", "CEO salary is 250000.", CONFIDENTIAL_FOLDER_ID)
    notes = make_document("n", "Notes.txt", "Meeting", GENERAL_FOLDER_ID)
    unfiled = make_document("u", "Loose.txt", "Loose", None)

    assert classify(secret, authorized=False) is Visibility.LOCKED
    assert classify(secret, authorized=True) is Visibility.VISIBLE
    assert classify(notes, authorized=False) is Visibility.VISIBLE
    assert classify(unfiled, authorized=False) is Visibility.VISIBLE


def test_locked_content_is_withheld_but_named(registry):
    context = assemble_context(registry.list(), authorized=False, folder_name=registry.folder_name)

    assert "250000" not in context.text
    assert "=== DOCUMENT: Salary.txt ===" in context.text
    assert "SECURITY: CONFIDENTIAL (LOCKED)" in context.text
    assert "Team meeting at 10am on Monday." in context.text
    assert "LOCATION: General" in context.text
    assert context.visible_ids == ["notes"]
    assert context.locked_ids == ["salary"]
    assert context.has_locked


def test_authorized_context_contains_everything_in_registry_order(registry):
    context = assemble_context(registry.list(), authorized=True, folder_name=registry.folder_name)

    assert "CEO salary is 250000." in context.text
    assert "SECURITY: CONFIDENTIAL (UNLOCKED)" in context.text
    assert context.text.index("Notes.txt") < context.text.index("Salary.txt")
    assert context.visible_ids == ["notes", "salary"]
    assert not context.has_locked


def test_unfiled_documents_get_unfiled_location():
    context = assemble_context([make_document("u", "Loose.txt", "Loose text")], authorized=False)
    assert "LOCATION: Unfiled" in context.text


def test_content_equal_to_withheld_reason_never_leaks():
    tricky = make_document("t", "Tricky.txt", WITHHELD_REASON, CONFIDENTIAL_FOLDER_ID)

    context = assemble_context([tricky], authorized=False)

    assert WITHHELD_REASON not in context.text
    assert ANONYMOUS_WITHHELD in context.text
    assert "Tricky.txt" not in context.text


def test_content_matching_every_marker_is_omitted():
    tricky = make_document("t", "Tricky.txt", "CONFIDENTIAL (LOCKED)", CONFIDENTIAL_FOLDER_ID)
    notes = make_document("n", "Notes.txt", "Meeting notes", GENERAL_FOLDER_ID)

    context = assemble_context([notes, tricky], authorized=False)

    assert "CONFIDENTIAL (LOCKED)" not in context.text
    assert "Meeting notes" in context.text
    assert context.locked_ids == ["t"]


def test_marker_is_checked_against_other_locked_documents():
    named = make_document("a", "Budget.xlsx", "Q3 budget", CONFIDENTIAL_FOLDER_ID)
    echo = make_document("b", "Echo.txt", "=== DOCUMENT: Budget.xlsx ===", CONFIDENTIAL_FOLDER_ID)

    context = assemble_context([named, echo], authorized=False)

    assert "=== DOCUMENT: Budget.xlsx ===" not in context.text
    assert "Q3 budget" not in context.text


def test_locked_content_matching_a_visible_label_never_leaks():
    notes = make_document("n", "Notes.txt", "Team meeting at 10am on Monday.", GENERAL_FOLDER_ID)
    secret = make_document("s", "Secret.txt", "LOCATION: General", CONFIDENTIAL_FOLDER_ID)

    context = assemble_context([notes, secret], authorized=False, folder_name=lambda _: "General")

    assert "LOCATION: General" not in context.text
    assert "Team meeting at 10am on Monday." in context.text
    assert context.visible_ids == ["n"]
    assert context.locked_ids == ["s"]


def test_locked_content_spanning_a_block_join_never_leaks():
    notes = make_document("n", "Notes.txt", "Meeting notes", GENERAL_FOLDER_ID)
    loose = make_document("u", "Loose.txt", "Loose thoughts", None)
    secret = make_document("s", "Secret.txt", "===\n\n===", CONFIDENTIAL_FOLDER_ID)

    context = assemble_context([notes, secret, loose], authorized=False)

    assert "===\n\n===" not in context.text
    assert "Meeting notes" in context.text
    assert "Loose thoughts" in context.text


def test_locked_content_equal_to_a_visible_name_never_leaks():
    notes = make_document("n", "Notes.txt", "Meeting notes", GENERAL_FOLDER_ID)
    secret = make_document("s", "Secret.txt", "Notes.txt", CONFIDENTIAL_FOLDER_ID)

    context = assemble_context([notes, secret], authorized=False)

    assert "Notes.txt" not in context.text
    assert "Meeting notes" in context.text


def test_text_shared_with_a_visible_document_stays_visible():
    notes = make_document("n", "Notes.txt", "Team meeting at 10am on Monday.", GENERAL_FOLDER_ID)
    secret = make_document("s", "Secret.txt", "Team meeting", CONFIDENTIAL_FOLDER_ID)

    context = assemble_context([notes, secret], authorized=False)

    assert "Team meeting at 10am on Monday." in context.text
    assert "=== DOCUMENT: Secret.txt ===" in context.text


# ==============================================================================
# Locked content drawn from the assembled framing itself
# ==============================================================================

VISIBLE_CONTENTS = ("Team meeting at 10am on Monday.", "Loose thoughts")


def _workspace(secret_content):
    return [
        make_document("n", "Notes.txt", VISIBLE_CONTENTS[0], GENERAL_FOLDER_ID),
        make_document("s", "Salary.txt", secret_content, CONFIDENTIAL_FOLDER_ID),
        make_document("u", "Loose.txt", VISIBLE_CONTENTS[1], None),
    ]


def _folder_name(folder_id):
    return {GENERAL_FOLDER_ID: "General", CONFIDENTIAL_FOLDER_ID: "Confidential"}.get(folder_id)


def _framing_fragments():
    rng = random.Random(20240501)
    fragments = {WITHHELD_REASON, ANONYMOUS_WITHHELD, "\n\n", "PUBLIC\nTeam"}
    for authorized in (False, True):
        text = assemble_context(_workspace("CEO salary is 250000."), authorized, _folder_name).text
        fragments.update(text.splitlines())
        start = text.find("\n\n")
        while start != -1:
            for before in range(1, 8):
                for after in range(1, 8):
                    fragments.add(text[max(0, start - before):start + 2 + after])
            start = text.find("\n\n", start + 1)
        for _ in range(150):
            start = rng.randrange(len(text))
            fragments.add(text[start:start + rng.randint(1, 60)])
    return sorted(
        fragment
        for fragment in fragments
        if fragment.strip() and not any(fragment.strip() in visible for visible in VISIBLE_CONTENTS)
    )


@pytest.mark.parametrize("secret_content", _framing_fragments())
def test_locked_content_from_framing_never_appears(secret_content):
    context = assemble_context(_workspace(secret_content), authorized=False, folder_name=_folder_name)

    assert secret_content.strip() not in context.text
    assert all(visible in context.text for visible in VISIBLE_CONTENTS)
    assert context.locked_ids == ["s"]


def test_preview_of_locked_document_never_shows_content():
    secret = make_document("s", "Salary.txt", "CEO salary is 250000.", CONFIDENTIAL_FOLDER_ID)

    assert document_preview(secret, authorized=False) == LOCKED_PREVIEW
    assert document_preview(secret, authorized=True) == "CEO salary is 250000."


def test_preview_collapses_whitespace_and_truncates():
    notes = make_document("n", "Notes.txt", "line one\n\n  line two " + "x" * 50, GENERAL_FOLDER_ID)

    preview = document_preview(notes, authorized=False, limit=20)

    assert preview == "line one line two xx…"
