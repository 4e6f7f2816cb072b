"""Streamlit UI helpers and rendering functions."""

from __future__ import annotations

import datetime
import hashlib
import json
from typing import List

import streamlit as st

from .access import Visibility, classify, document_preview
from .constants import ALLOWED_EXTENSIONS, CONFIDENTIAL_FOLDER_ID, GENERAL_FOLDER_ID, PROTECTED_FOLDER_IDS
from .documents import Document, FolderError, WorkspaceImportError
from .files import ingest_files
from .logger import LOGGER
from .orchestrator import SessionBusyError, SessionOrchestrator
from .sessions import USER, Message, export_markdown
from .state import AppState

_BUSY_WARNING = "⏳ Still working on the previous request. Please wait."


def _rerun_app() -> None:
    st.rerun()


def _format_file_size(size_bytes: int) -> str:
    """Return a human-friendly file size string."""
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def _already_processed(key: str, data: bytes) -> bool:
    """Streamlit reruns keep uploader values; remember what was consumed."""
    seen = st.session_state.setdefault(key, set())
    digest = hashlib.md5(data).hexdigest()
    if digest in seen:
        return True
    seen.add(digest)
    return False


# ==============================================================================
#  SIDEBAR
# ==============================================================================

def _render_uploads(orchestrator: SessionOrchestrator) -> None:
    target = st.radio(
        "Upload to",
        options=[GENERAL_FOLDER_ID, CONFIDENTIAL_FOLDER_ID],
        format_func=lambda folder_id: "🔒 Confidential" if folder_id == CONFIDENTIAL_FOLDER_ID else "📁 General",
        horizontal=True,
    )
    uploaded_files = st.file_uploader(
        "Add documents",
        type=[ext.lstrip(".") for ext in sorted(ALLOWED_EXTENSIONS)],
        accept_multiple_files=True,
        key=f"uploader_{target}",
    )
    if not uploaded_files:
        return

    batch = []
    for uploaded in uploaded_files:
        data = uploaded.getvalue()
        if not _already_processed("processed_upload_hashes", data + target.encode()):
            batch.append((uploaded.name, data, uploaded.type))
    if not batch:
        return

    with st.spinner(f"Processing {len(batch)} file(s)..."):
        report = ingest_files(orchestrator.registry, batch, folder_id=target)
    if report.added:
        st.success(f"✅ Added {len(report.added)} document(s)")
    for failure in report.failures:
        st.error(f"❌ {failure.filename}: {failure.reason}")


def _render_document_row(orchestrator: SessionOrchestrator, document: Document) -> None:
    registry = orchestrator.registry
    folders = registry.folders()
    st.markdown(f"**{document.name}**  \n<small>{_format_file_size(document.size_bytes)}</small>", unsafe_allow_html=True)

    options: List = [None] + [folder.id for folder in folders]
    current = document.folder_id if document.folder_id in options else None
    col_move, col_sum, col_del = st.columns([3, 1, 1])
    with col_move:
        target = st.selectbox(
            "Folder",
            options=options,
            index=options.index(current),
            format_func=lambda folder_id: registry.folder_name(folder_id) or "Unfiled",
            key=f"move_{document.id}",
            label_visibility="collapsed",
        )
        if target != current:
            registry.move(document.id, target)
            _rerun_app()
    with col_sum:
        if st.button("📝", key=f"summary_{document.id}", help="Summarize"):
            try:
                with st.spinner("Summarizing..."):
                    orchestrator.summarize_document(document.id)
            except SessionBusyError:
                st.warning(_BUSY_WARNING)
            _rerun_app()
    with col_del:
        if st.button("🗑️", key=f"delete_{document.id}", help="Delete document"):
            registry.delete(document.id)
            _rerun_app()


def _render_folders(orchestrator: SessionOrchestrator) -> None:
    registry = orchestrator.registry
    documents = registry.list()

    for folder in registry.folders():
        in_folder = [doc for doc in documents if doc.folder_id == folder.id]
        icon = "🔒" if folder.id == CONFIDENTIAL_FOLDER_ID else "📁"
        with st.expander(f"{icon} {folder.name} ({len(in_folder)})", expanded=False):
            for document in in_folder:
                _render_document_row(orchestrator, document)
            if folder.id not in PROTECTED_FOLDER_IDS:
                if st.button("Delete folder", key=f"delete_folder_{folder.id}"):
                    registry.delete_folder(folder.id)
                    _rerun_app()

    folder_ids = {folder.id for folder in registry.folders()}
    unfiled = [doc for doc in documents if doc.folder_id not in folder_ids]
    if unfiled:
        with st.expander(f"📄 Unfiled ({len(unfiled)})", expanded=False):
            for document in unfiled:
                _render_document_row(orchestrator, document)

    with st.form("new_folder", clear_on_submit=True):
        name = st.text_input("New folder", placeholder="Folder name")
        if st.form_submit_button("Create"):
            try:
                registry.create_folder(name)
                _rerun_app()
            except FolderError as exc:
                st.error(str(exc))


def _render_workspace_backup(orchestrator: SessionOrchestrator) -> None:
    payload = json.dumps(orchestrator.registry.export_workspace(), ensure_ascii=False, indent=2)
    st.download_button(
        "💾 Export workspace",
        data=payload,
        file_name=f"notebook-backup-{datetime.date.today().isoformat()}.json",
        mime="application/json",
        use_container_width=True,
    )

    backup = st.file_uploader("Import workspace", type=["json"], key="workspace_import")
    if backup is None:
        return
    data = backup.getvalue()
    if _already_processed("processed_import_hashes", data):
        return
    try:
        count = orchestrator.import_workspace(json.loads(data.decode("utf-8")))
    except (json.JSONDecodeError, UnicodeDecodeError, WorkspaceImportError) as exc:
        LOGGER.error("Workspace import failed: %s", exc)
        st.error("❌ Failed to import workspace. The file may be corrupted.")
        return
    except SessionBusyError:
        st.warning(_BUSY_WARNING)
        return
    st.success(f"✅ Imported {count} document(s)")
    _rerun_app()


def _render_sidebar(orchestrator: SessionOrchestrator) -> None:
    with st.sidebar:
        st.header("📓 Notebook")

        if orchestrator.auth.authorized:
            st.success("🔓 Administrator")
            if st.button("Log out", use_container_width=True):
                orchestrator.logout()
                _rerun_app()
        elif not orchestrator.auth.prompt_open:
            if st.button("🔐 Admin login", use_container_width=True):
                orchestrator.open_login()
                _rerun_app()

        with st.expander("⬆️ Upload", expanded=True):
            _render_uploads(orchestrator)

        st.subheader("Folders")
        _render_folders(orchestrator)

        # Backups carry confidential content
        if orchestrator.auth.authorized:
            with st.expander("🗄️ Workspace", expanded=False):
                _render_workspace_backup(orchestrator)

        if st.button("🧹 New conversation", use_container_width=True):
            try:
                orchestrator.reset_conversation()
            except SessionBusyError:
                st.warning(_BUSY_WARNING)
            _rerun_app()


# ==============================================================================
#  SOURCES
# ==============================================================================

def _render_sources(orchestrator: SessionOrchestrator) -> None:
    documents = orchestrator.registry.list()
    authorized = orchestrator.auth.authorized
    st.subheader("Source Documents")
    st.caption(f"{len(documents)} total document(s)")

    if not documents:
        st.info("No documents yet. Upload text, PDF, Word or spreadsheet files from the sidebar.")
        return

    for document in documents:
        locked = classify(document, authorized) is Visibility.LOCKED
        with st.container(border=True):
            col_name, col_del = st.columns([6, 1])
            with col_name:
                icon = "🔒" if locked else "📄"
                st.markdown(f"{icon} **{document.name}**")
                st.caption(f"Added on {document.uploaded_at.strftime('%Y-%m-%d')}")
            with col_del:
                if st.button("🗑️", key=f"source_delete_{document.id}", help="Delete document"):
                    orchestrator.registry.delete(document.id)
                    _rerun_app()
            st.text(document_preview(document, authorized))
            extension = document.name.rsplit(".", 1)[-1].upper() if "." in document.name else "TEXT"
            st.caption(f"Type: {extension} · {_format_file_size(document.size_bytes)}")


def _load_shared_notebook(orchestrator: SessionOrchestrator) -> None:
    """Import the backup named by ``?notebook=<url>`` once the session is an administrator."""
    url = st.query_params.get("notebook")
    if not url or st.session_state.get("shared_notebook_loaded") == url:
        return

    if not orchestrator.auth.authorized:
        st.info("🔗 This link shares a notebook. Log in as administrator to load it; it replaces the current workspace.")
        if st.session_state.get("shared_notebook_prompted") != url:
            st.session_state["shared_notebook_prompted"] = url
            orchestrator.open_login()
        return

    st.session_state["shared_notebook_loaded"] = url
    try:
        with st.spinner("Loading shared notebook..."):
            count = orchestrator.import_shared_notebook(url)
    except WorkspaceImportError as exc:
        LOGGER.error("Shared notebook import failed: %s", exc)
        st.error("❌ Failed to load the shared notebook.")
        return
    except SessionBusyError:
        st.session_state.pop("shared_notebook_loaded", None)
        st.warning(_BUSY_WARNING)
        return
    st.success(f"✅ Loaded shared notebook with {count} document(s)")
    _rerun_app()


# ==============================================================================
#  CHAT
# ==============================================================================

def _render_message(message: Message) -> None:
    with st.chat_message(message.role):
        if message.metadata.get("error"):
            st.error(message.text)
        else:
            st.markdown(message.text)
        if message.sources:
            st.caption("📚 Sources: " + ", ".join(message.sources))


def _render_login_form(orchestrator: SessionOrchestrator) -> None:
    with st.form("admin_login"):
        st.markdown("**🔐 Administrator verification**")
        username = st.text_input("Username")
        password = st.text_input("Password", type="password")
        col_submit, col_cancel = st.columns(2)
        submitted = col_submit.form_submit_button("Log in", use_container_width=True)
        cancelled = col_cancel.form_submit_button("Cancel", use_container_width=True)

    if cancelled:
        orchestrator.cancel_login()
        _rerun_app()
    if submitted:
        try:
            with st.spinner("Verifying..."):
                result = orchestrator.submit_credentials(username, password)
        except SessionBusyError:
            st.warning(_BUSY_WARNING)
            return
        if result.ok:
            _rerun_app()
        else:
            st.error(result.error)


def render_app(app_state: AppState) -> None:
    """Render the full notebook: sidebar, chat and sources tabs, login form and chat input."""
    orchestrator = app_state.ensure_orchestrator()
    _render_sidebar(orchestrator)

    st.title("📓 Secure Notebook")
    _load_shared_notebook(orchestrator)
    chat_tab, sources_tab = st.tabs(["💬 Chat", "📚 Sources"])

    with sources_tab:
        _render_sources(orchestrator)

    with chat_tab:
        for message in orchestrator.messages:
            _render_message(message)

        if orchestrator.auth.prompt_open:
            _render_login_form(orchestrator)

        st.download_button(
            "⬇️ Export chat",
            data=export_markdown(orchestrator.messages),
            file_name=f"chat-export-{datetime.date.today().isoformat()}.md",
            mime="text/markdown",
        )

    user_prompt = st.chat_input("Ask about your documents...")
    if user_prompt and user_prompt.strip():
        with chat_tab, st.chat_message(USER):
            st.markdown(user_prompt)
        try:
            with st.spinner("Thinking..."):
                orchestrator.submit_query(user_prompt)
        except SessionBusyError:
            st.warning(_BUSY_WARNING)
            return
        _rerun_app()


__all__ = ["render_app"]
