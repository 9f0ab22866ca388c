"""Chat resource names derived from the application ID."""

DEFAULT_JID_DOMAIN = "@conference.xmpp.ethoradev.com"


def create_chat_name(
    app_id: str,
    workspace_id: str,
    full: bool = True,
    domain: str = DEFAULT_JID_DOMAIN
) -> str:
    """
    Room name for a workspace: `<appId>_<workspaceId>`.

    With `full=True` the conference domain is appended, giving the room JID
    front-ends join. The short form is what the REST API expects.
    """
    short_name = f"{app_id}_{workspace_id}"
    return f"{short_name}{domain}" if full else short_name


def strip_jid_domain(jid: str) -> str:
    return jid.split("@", 1)[0]


def derive_user_id(app_id: str, user_id: str) -> str:
    """The chat service's identifier for a local user: `<appId>_<userId>`."""
    if user_id.startswith(f"{app_id}_"):
        return user_id
    return f"{app_id}_{user_id}"
