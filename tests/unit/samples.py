"""Sample Heptabase export used across tests."""

import json
from typing import Any

ASYNC_DOC = {
    "type": "doc",
    "content": [
        {"type": "heading", "attrs": {"level": 1}, "content": [{"type": "text", "text": "Async"}]},
        {
            "type": "paragraph",
            "content": [
                {"type": "text", "text": "Use "},
                {"type": "text", "text": "asyncio", "marks": [{"type": "bold"}]},
                {"type": "text", "text": " for IO."},
            ],
        },
    ],
}

EXPORT_DATA: dict[str, Any] = {
    "whiteBoardList": [
        {
            "id": "b1",
            "name": "Research",
            "createdBy": "u1",
            "createdTime": "2024-01-10T09:00:00.000Z",
            "lastEditedTime": "2024-01-12T09:00:00.000Z",
            "spaceId": "s1",
            "isTrashed": False,
        },
        {
            "id": "b2",
            "name": "Old research",
            "createdTime": "2024-01-05T09:00:00.000Z",
            "isTrashed": True,
        },
        {
            "id": "b3",
            "name": "Cooking",
            "createdTime": "2024-03-05T09:00:00.000Z",
            "isTrashed": False,
        },
    ],
    "cardList": [
        {
            "id": "c1",
            "title": "Python notes",
            "content": json.dumps(ASYNC_DOC),
            "createdTime": "2024-01-11T08:00:00.000Z",
            "lastEditedTime": "2024-01-11T09:00:00.000Z",
        },
        {
            "id": "c2",
            "title": None,
            "content": "Rust ownership rules",
            "createdTime": "2024-02-01T12:00:00Z",
        },
        {
            "id": "c3",
            "title": "Python 2 tricks",
            "content": "print statement",
            "createdTime": "2024-01-20T12:00:00Z",
            "isTrashed": True,
        },
        {
            "id": "c4",
            "title": "Pasta",
            "content": "Boil water",
            "createdTime": "not-a-date",
        },
    ],
    "cardInstances": [
        {"id": "p1", "cardId": "c1", "whiteboardId": "b1", "x": 100, "y": 200},
        {"id": "p2", "cardId": "c2", "whiteboardId": "b1", "x": 103, "y": 204},
        {"id": "p3", "cardId": "c1", "whiteboardId": "b3", "x": 0, "y": 0},
        {"id": "p4", "cardId": "missing", "whiteboardId": "b1", "x": 100, "y": 200},
        {"id": "p5", "cardId": "c4", "whiteboardId": "b3", "x": 150, "y": 0},
    ],
    "connections": [
        {"id": "k1", "whiteboardId": "b1", "beginId": "p1", "endId": "p2"},
        {"id": "k2", "whiteboardId": "b3", "beginId": "p3", "endId": "p5"},
    ],
}

OLDER_EXPORT_DATA: dict[str, Any] = {
    "whiteBoardList": EXPORT_DATA["whiteBoardList"][:1],
    "cardList": EXPORT_DATA["cardList"][:1],
    "cardInstances": EXPORT_DATA["cardInstances"][:1],
    "connections": [],
}

OLDER_BACKUP = "Heptabase-Data-Backup-2024-05-01T10-00-00-000Z"
NEWER_BACKUP = "Heptabase-Data-Backup-2024-06-01T10-00-00-000Z"
