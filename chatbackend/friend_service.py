"""Rules for befriending users and handling friend requests."""

from __future__ import annotations

import uuid
from typing import Any

from chatbackend.errors import ServiceError
from chatbackend.friend_models import (
    FriendRequestEntity,
    FriendRequestResponse,
    FriendResponse,
)
from chatbackend.friend_repository import FriendRepository


def _friend_from_user(user: Any) -> FriendResponse:
    return FriendResponse(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
    )


class FriendService:
    """Uses a friend repository and any user store offering ``find_by_id``."""

    def __init__(self, friend_repo: FriendRepository, user_repo: Any) -> None:
        self._friend_repo = friend_repo
        self._user_repo = user_repo

    def is_friend(self, user_id: uuid.UUID, friend_id: uuid.UUID) -> bool:
        return self._friend_repo.find_friendship(user_id, friend_id) is not None

    def get_friends(self, user_id: uuid.UUID) -> list[FriendResponse]:
        return self._friend_repo.find_friends(user_id)

    def remove_friend(self, user_id: uuid.UUID, friend_id: uuid.UUID) -> None:
        self._friend_repo.delete_friendship(user_id, friend_id)

    def send_friend_request(
        self, sender_id: uuid.UUID, receiver_id: uuid.UUID, message: str | None
    ) -> FriendRequestEntity:
        if receiver_id == sender_id:
            raise ServiceError.bad_request("Cannot send friend request to yourself")
        if self._user_repo.find_by_id(receiver_id) is None:
            raise ServiceError.not_found("Receiver user not found")
        if self._friend_repo.find_friendship(sender_id, receiver_id) is not None:
            raise ServiceError.bad_request("Users are already friends")
        if self._friend_repo.find_friend_request(sender_id, receiver_id) is not None:
            raise ServiceError.bad_request("Friend request already exists")
        return self._friend_repo.create_friend_request(sender_id, receiver_id, message)

    def accept_friend_request(
        self, user_id: uuid.UUID, request_id: uuid.UUID
    ) -> FriendResponse:
        """Turn a request addressed to the user into a friendship; return the sender."""
        with self._friend_repo.transaction() as repo:
            request = repo.find_friend_request_by_id(request_id)
            if request is None:
                raise ServiceError.not_found("Friend request not found")
            if request.to_user_id != user_id:
                raise ServiceError.forbidden(
                    "You are not allowed to accept this friend request"
                )
            repo.create_friendship(request.from_user_id, request.to_user_id)
            repo.delete_friend_request(request_id)

        sender = self._user_repo.find_by_id(request.from_user_id)
        if sender is None:
            raise ServiceError.not_found("User not found")
        return _friend_from_user(sender)

    def decline_friend_request(self, user_id: uuid.UUID, request_id: uuid.UUID) -> None:
        request = self._friend_repo.find_friend_request_by_id(request_id)
        if request is None:
            raise ServiceError.not_found("Friend request not found")
        if request.to_user_id != user_id:
            raise ServiceError.forbidden("You are not allowed to decline this friend request")
        self._friend_repo.delete_friend_request(request_id)

    def get_friend_requests(self, user_id: uuid.UUID) -> list[FriendRequestResponse]:
        """Received requests first, then sent ones."""
        received = self._friend_repo.find_friend_request_to_user(user_id)
        sent = self._friend_repo.find_friend_request_from_user(user_id)
        return [*received, *sent]