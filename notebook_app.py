"""Streamlit entrypoint for the secure notebook."""

from __future__ import annotations

import streamlit as st

from notebook.config import AppConfig
from notebook.logger import LOGGER
from notebook.state import AppState
from notebook.ui import render_app


def main() -> None:
    # Page config (must be first Streamlit command)
    st.set_page_config(
        page_title="Secure Notebook",
        page_icon="📓",
        layout="centered",
        initial_sidebar_state="expanded",
    )

    AppConfig.get()

    # Version check: recreate AppState if structure changed
    APP_STATE_VERSION = "1.0"
    if st.session_state.get("app_state_version") != APP_STATE_VERSION:
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        LOGGER.info("Cleared session state due to version change")

    if "app_state" not in st.session_state:
        st.session_state["app_state"] = AppState()
        st.session_state["app_state_version"] = APP_STATE_VERSION
        LOGGER.info("Created new AppState (version %s)", APP_STATE_VERSION)

    app_state: AppState = st.session_state["app_state"]
    render_app(app_state)


if __name__ == "__main__":
    main()
