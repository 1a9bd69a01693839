# chatbackend

The business core of a chat server. It covers direct and group conversations
with unread counters, friendships and friend requests, and file uploads with
size and type checks. A small error model maps service failures onto HTTP
status codes and JSON bodies.

The package has no runtime dependencies. Data is kept in SQLite through a
connection opened with `chatbackend.db.connect`. That function accepts a path,
`:memory:` or a `sqlite://` URL. `chatbackend.db.create_schema` creates the
tables.

## Layout

| Module | What it holds |
| --- | --- |
| `chatbackend.db` | `connect`, `create_schema`, time-ordered ids (`uuid7`) and `utcnow` |
| `chatbackend.errors` | `ServiceError`, `ErrorKind`, `DbErrorMeta`, the `ApiError` family, `conflict_message`, `to_api_error`, `from_database_error`, `error_response` |
| `chatbackend.responses` | `Success` response envelopes (`ok`, `created`, `no_content`) |
| `chatbackend.conversation_models` | conversation entities and views, `ConversationType`, `NewConversation`, `MessageQueryRequest` |
| `chatbackend.conversation_repository` | `ConversationRepository`, `ParticipantRepository`, `LastMessageRepository` |
| `chatbackend.conversation_service` | `ConversationService` |
| `chatbackend.conversation_handlers` | `get_conversations`, `get_messages`, `create_conversation`, `mark_as_seen` |
| `chatbackend.friend_models` | friend entities and views, `FriendRequestBody` |
| `chatbackend.friend_repository` | `FriendRepository` |
| `chatbackend.friend_service` | `FriendService` |
| `chatbackend.file_models` | `NewFile`, `UploadConfig`, `FileEntity`, `FileUploadResponse` |
| `chatbackend.file_repository` | `FileRepository` |
| `chatbackend.file_service` | `FileUploadService` |
| `chatbackend.file_handlers` | `UploadPart`, `upload_file`, `get_file`, `delete_file` |
| `chatbackend.access` | `RequireBody`, `bearer_token`, `authorize`, `require_friend`, `require_group_member` |

## Friends

```python
from chatbackend.db import connect, create_schema
from chatbackend.friend_repository import FriendRepository
from chatbackend.friend_service import FriendService

conn = connect(":memory:")
create_schema(conn)

friends = FriendService(FriendRepository(conn), user_repo)
request = friends.send_friend_request(alice_id, bob_id, "hi!")
friends.accept_friend_request(bob_id, request.id)
assert friends.is_friend(alice_id, bob_id)
```

`user_repo` is any object with a `find_by_id(user_id)` method. It returns the
user or `None`, and the user has `id`, `username`, `display_name` and
`avatar_url` attributes.

A friendship is stored once per pair, so `is_friend(a, b)` and `is_friend(b, a)`
agree. `send_friend_request` raises `ServiceError` in these cases:

- the request is addressed to yourself;
- the receiver is unknown;
- the users are already friends;
- a request already exists in either direction.

Only the addressee may accept or decline a request. `get_friend_requests`
lists received requests first, then sent ones.

## Conversations

```python
from chatbackend.conversation_models import ConversationType
from chatbackend.conversation_repository import ConversationRepository, ParticipantRepository
from chatbackend.conversation_service import ConversationService

participants = ParticipantRepository(conn)
conversations = ConversationRepository(conn, participants)
service = ConversationService(conversations, participants, message_repo, notifier)

detail = service.create_conversation(ConversationType.DIRECT, "", [bob_id], alice_id)
```

`create_conversation` behaves as follows:

- A direct conversation is created with the first member, unless one already
  exists between the two users; in that case the existing one is returned.
- A group is created with the members as participants. Each member is then
  sent a `new-group` event through `notifier.send_to_users`.

`message_repo` must offer two methods:

- `find_by_query(conversation_id, created_at, limit)`, which returns messages
  newest first, up to `limit + 1` of them;
- `get_last_message_by_conversation(conversation_id)`.

`get_message` returns a page of messages oldest first, together with an
RFC 3339 cursor for the next older page.

`mark_as_seen` refuses users who are not participants. It records the last
message and resets the caller's unread counter, unless the caller sent that
message. It then broadcasts a `read-message` event with
`notifier.broadcast_to_room`. `notifier` may be `None`.

The handlers in `chatbackend.conversation_handlers` parse request bodies and
query parameters, call the service, and return `Success` values. They raise
`ApiError` subclasses. `chatbackend.access.require_friend` checks that the
caller is friends with a body's `recipient_id` or `member_ids`.
`require_group_member` checks membership of a body's `conversation_id`.

## File uploads

`FileUploadService.with_defaults(FileRepository(conn))` sets up uploads with
these defaults:

- files of up to 10 MiB are accepted;
- the allowed types are `image/jpeg`, `image/png`, `image/gif`, `image/webp`,
  `application/pdf` and `text/plain`;
- files are written to `./uploads` under a time-ordered name that keeps the
  original extension;
- they are reported with the URL `/uploads/<name>`.

Pass your own `UploadConfig` to `FileUploadService` to change any of these.

`chatbackend.file_handlers.upload_file` stores the first `UploadPart` of a
form. `delete_file` lets only the uploader remove a file.

## Errors

Services raise `ServiceError`. `to_api_error` turns it into an `ApiError`
carrying the HTTP status:

- bad request, unauthorized, forbidden, not found and conflict keep their
  message;
- everything else becomes a plain `InternalServerError`.

`from_database_error` turns a database exception into a `ServiceError`. A
unique-constraint failure becomes a conflict, worded from the last part of the
constraint name; a clash on `users.username`, for example, reads
`Username already exists`. `error_response(error, frontend_url)` gives the
status, the CORS headers and the JSON body `{"message": ...}` for an error.

## What is not included

This package is the layer beneath a server, not a server. It does not:

- listen for HTTP or WebSocket connections;
- decode or verify tokens (`bearer_token` only extracts the token from an
  `Authorization` header);
- keep users or messages;
- deliver notifications.

Supply those as `user_repo`, `message_repo` and `notifier`. Friend operations
have no request handlers here; call `FriendService` directly.