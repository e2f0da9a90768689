"""Node text writes against the Dynalist ``doc/edit`` endpoint.

Each function sends one change and returns an outcome dict
(``{"success": True, "node_id": ...}`` or ``{"success": False, "error": ...}``)
instead of raising, so callers decide how a refused change is reported.
"""

from typing import Any

from loguru import logger

from doctree_sync.protocols import ApiProtocol


def submit_change(api: ApiProtocol, document_id: str, change: dict[str, Any]) -> dict[str, Any]:
    """Send a single change; the raw API response is under ``result`` on success."""
    action = change["action"]
    try:
        response = api.call("doc/edit", {"file_id": document_id, "changes": [change]})
    except RuntimeError as e:
        logger.debug("doc/edit {} in {} refused: {}", action, document_id, e)
        return {"success": False, "error": str(e)}
    if response.get("_code") != "Ok":
        return {"success": False, "error": f"Dynalist rejected {action}: {response.get('_msg')}"}
    return {"success": True, "result": response}


def edit_node(api: ApiProtocol, *, node_id: str, document_id: str, content: str) -> dict[str, Any]:
    """Replace a node's content text."""
    change = {"action": "edit", "node_id": node_id, "content": content}
    outcome = submit_change(api, document_id, change)
    if outcome["success"]:
        return {"success": True, "node_id": node_id}
    return outcome


def add_node(
    api: ApiProtocol,
    *,
    parent_id: str,
    document_id: str,
    content: str = "",
) -> dict[str, Any]:
    """Append a new last child under parent_id and return its id."""
    change = {"action": "insert", "parent_id": parent_id, "content": content, "index": -1}
    outcome = submit_change(api, document_id, change)
    if not outcome["success"]:
        return outcome
    new_ids = outcome["result"].get("new_node_ids") or []
    if not new_ids:
        return {"success": False, "error": f"No id returned for new child of {parent_id!r}"}
    return {"success": True, "node_id": new_ids[0]}


def delete_node(api: ApiProtocol, *, node_id: str, document_id: str) -> dict[str, Any]:
    """Delete a node; Dynalist removes its descendants with it."""
    outcome = submit_change(api, document_id, {"action": "delete", "node_id": node_id})
    if outcome["success"]:
        return {"success": True, "node_id": node_id}
    return outcome
