"""Helpers that work on user lists and user passwords."""

from __future__ import annotations

from collections.abc import Iterable

from mieru.appctl.model import User
from mieru.cipher.blocks import hash_password


def user_list_to_map(users: Iterable[User]) -> dict[str, User]:
    """Map each user's name to the user; a later duplicate wins."""
    return {user.name or "": user for user in users}


def hash_user_password(user: User | None, keep_plaintext: bool) -> User | None:
    """Store the hashed password in the user, clearing the plain one unless kept.

    The user is changed in place and returned. A user without a password
    is returned unchanged.
    """
    if user is None or not user.password:
        return user
    hashed = hash_password(user.password.encode("utf-8"), (user.name or "").encode("utf-8"))
    user.hashed_password = hashed.hex()
    if not keep_plaintext:
        user.password = ""
    return user


def hash_user_passwords(users: list[User], keep_plaintext: bool) -> list[User]:
    """Hash the password of every user in the list, in place, and return the list."""
    for user in users:
        hash_user_password(user, keep_plaintext)
    return users