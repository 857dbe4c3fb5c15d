"""Conversations between clients and the freelancers they hired."""
from __future__ import annotations

import streamlit as st

from theunoia import data
from theunoia.errors import ServiceError, ValidationFailed
from theunoia.services import messages as svc
from theunoia.supabase_client import current_user_id
from theunoia.time_utils import time_ago
from theunoia.ui import pop_toast, show_error

PAGE_KEY_PREFIX = "ms_"
_SELECTED = "selected_conversation_id"


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


def _render_thread(conversation, user_id: str) -> None:
    conv_id = conversation["id"]
    rows = data.conversation_messages(conv_id)
    if svc.unread_count(rows, user_id):
        try:
            svc.mark_read(conv_id, user_id)
        except ServiceError as exc:
            print(f"[messages] mark_read failed: {exc}")
        else:
            data.mutated("send_message")

    st.subheader(conversation.get("other_name") or "Conversation")
    if conversation.get("project_title"):
        st.caption(f"Task: {conversation['project_title']}")
    for message in rows:
        role = "user" if message.get("sender_id") == user_id else "assistant"
        with st.chat_message(role):
            if message.get("content"):
                st.write(message["content"])
            for item in message.get("attachments") or []:
                st.markdown(f"📎 [{item.get('name')}]({item.get('url')})")
            st.caption(time_ago(message.get("created_at")))

    with st.expander("Attach a file"):
        upload = st.file_uploader("File", key=k(f"file_{conv_id}"))
    text = st.chat_input("Write a message", key=k(f"input_{conv_id}"))
    if text is None:
        return
    try:
        attachments = []
        if upload is not None:
            attachments.append(
                svc.upload_attachment(conv_id, upload.name, upload.getvalue(), upload.type or "application/octet-stream")
            )
        svc.send_message(conv_id, user_id, text, attachments)
    except (ValidationFailed, ServiceError) as exc:
        show_error(exc)
        return
    data.mutated("send_message")
    st.rerun()


def show_messages_page() -> None:
    pop_toast()
    user_id = current_user_id()
    st.header("Messages")
    rows = data.conversations(user_id)
    if not rows:
        st.info("Conversations open automatically when a bid is accepted.")
        return

    ids = [row["id"] for row in rows]
    selected = st.session_state.get(_SELECTED)
    if selected not in ids:
        selected = ids[0]

    def _label(row):
        unread = f" · {row['unread']} new" if row.get("unread") else ""
        return (
            f"{row.get('other_name')} · {row.get('project_title') or 'Task'} · "
            f"{time_ago(row.get('last_message_at') or row.get('created_at'))}{unread}"
        )

    labels = {row["id"]: _label(row) for row in rows}
    left, right = st.columns([1, 2])
    with left:
        choice = st.radio("Conversations", ids, index=ids.index(selected), format_func=labels.get, key=k("list"))
        st.session_state[_SELECTED] = choice
    with right:
        conversation = next(row for row in rows if row["id"] == choice)
        _render_thread(conversation, user_id)


__all__ = ["show_messages_page"]
