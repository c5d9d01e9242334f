# neighbourhood_chat/domain/reactions.py
from datetime import datetime

from neighbourhood_chat.domain.entities import REACTION_TYPES


class ReactionInvariantError(ValueError):
    pass


def toggle_reaction(
    reactions: list[dict] | None, reaction_type: str, user_id: str, now: datetime
) -> list[dict]:
    """Apply one user's toggle and return a new reactions list.

    The input is never mutated; callers assign the result back to the message
    so the ORM sees a changed JSON value.
    """
    if reaction_type not in REACTION_TYPES:
        raise ReactionInvariantError(f"Unknown reaction type: {reaction_type}")

    updated: list[dict] = []
    found = False
    for reaction in reactions or []:
        entry = {**reaction, "users": list(reaction.get("users") or [])}
        if entry.get("type") == reaction_type:
            found = True
            if user_id in entry["users"]:
                entry["users"] = [u for u in entry["users"] if u != user_id]
            else:
                entry["users"].append(user_id)
            entry["count"] = len(entry["users"])
            if entry["count"] == 0:
                continue
        updated.append(entry)

    if not found:
        updated.append(
            {
                "type": reaction_type,
                "users": [user_id],
                "count": 1,
                "createdAt": now.isoformat(),
            }
        )

    check_reaction_invariants(updated)
    return updated


def check_reaction_invariants(reactions: list[dict]) -> None:
    seen_types = set()
    for reaction in reactions:
        reaction_type = reaction.get("type")
        users = reaction.get("users") or []
        if reaction_type not in REACTION_TYPES:
            raise ReactionInvariantError(f"Unknown reaction type: {reaction_type}")
        if reaction_type in seen_types:
            raise ReactionInvariantError(f"Duplicate reaction entry: {reaction_type}")
        seen_types.add(reaction_type)
        if not users:
            raise ReactionInvariantError(f"Empty reaction entry: {reaction_type}")
        if len(set(users)) != len(users):
            raise ReactionInvariantError(f"Duplicate users in reaction: {reaction_type}")
        if reaction.get("count") != len(users):
            raise ReactionInvariantError(
                f"Reaction count {reaction.get('count')} does not match {len(users)} users"
            )
