"""
Field projection presets for Microsoft Graph message queries.

Each preset is a fixed, ordered list of message fields sent as $select,
sized for one use case so responses stay small.
"""

import logging
from typing import Literal

logger = logging.getLogger(__name__)

FieldPreset = Literal[
    "list",
    "read",
    "forensic",
    "export",
    "search",
    "delta",
    "conversation",
]

FIELD_PRESETS: dict[str, tuple[str, ...]] = {
    # Quick folder scans, batch operations that only need IDs
    "list": ("id", "subject", "from", "receivedDateTime", "isRead"),
    "read": (
        "id",
        "subject",
        "from",
        "toRecipients",
        "ccRecipients",
        "receivedDateTime",
        "body",
        "bodyPreview",
        "hasAttachments",
        "importance",
        "isRead",
    ),
    # Evidence collection, compliance, legal review
    "forensic": (
        "id",
        "subject",
        "from",
        "toRecipients",
        "ccRecipients",
        "bccRecipients",
        "receivedDateTime",
        "sentDateTime",
        "body",
        "bodyPreview",
        "hasAttachments",
        "importance",
        "isRead",
        "internetMessageHeaders",
        "internetMessageId",
        "conversationId",
        "conversationIndex",
        "parentFolderId",
    ),
    # Backup, migration, archival
    "export": (
        "id",
        "subject",
        "from",
        "toRecipients",
        "ccRecipients",
        "bccRecipients",
        "replyTo",
        "receivedDateTime",
        "sentDateTime",
        "createdDateTime",
        "lastModifiedDateTime",
        "body",
        "bodyPreview",
        "hasAttachments",
        "importance",
        "isRead",
        "isDraft",
        "internetMessageHeaders",
        "internetMessageId",
        "conversationId",
        "conversationIndex",
        "parentFolderId",
        "categories",
        "flag",
        "webLink",
        "changeKey",
    ),
    "search": (
        "id",
        "subject",
        "from",
        "toRecipients",
        "receivedDateTime",
        "bodyPreview",
        "hasAttachments",
        "importance",
        "isRead",
        "parentFolderId",
    ),
    # Incremental sync; changeKey lets callers spot real modifications
    "delta": (
        "id",
        "subject",
        "from",
        "receivedDateTime",
        "isRead",
        "parentFolderId",
        "changeKey",
    ),
    "conversation": (
        "id",
        "subject",
        "from",
        "toRecipients",
        "receivedDateTime",
        "bodyPreview",
        "conversationId",
        "conversationIndex",
        "isRead",
    ),
}

# Every message field the presets may draw from
EXTENDED_EMAIL_FIELDS: tuple[str, ...] = (
    "id",
    "subject",
    "from",
    "sender",
    "toRecipients",
    "ccRecipients",
    "bccRecipients",
    "replyTo",
    "receivedDateTime",
    "sentDateTime",
    "createdDateTime",
    "lastModifiedDateTime",
    "body",
    "bodyPreview",
    "hasAttachments",
    "importance",
    "isRead",
    "isDraft",
    "isDeliveryReceiptRequested",
    "isReadReceiptRequested",
    "internetMessageHeaders",
    "internetMessageId",
    "conversationId",
    "conversationIndex",
    "parentFolderId",
    "categories",
    "flag",
    "webLink",
    "changeKey",
    "inferenceClassification",
)

# sizeInBytes is not available on the mailFolder resource
FOLDER_FIELDS: dict[str, tuple[str, ...]] = {
    "basic": ("id", "displayName", "parentFolderId"),
    "with_counts": (
        "id",
        "displayName",
        "parentFolderId",
        "totalItemCount",
        "unreadItemCount",
    ),
    "full": (
        "id",
        "displayName",
        "parentFolderId",
        "childFolderCount",
        "totalItemCount",
        "unreadItemCount",
        "isHidden",
    ),
}


def fields_for(preset: str = "list") -> tuple[str, ...]:
    """
    Get the ordered field list for a message preset.

    An unknown name is logged and answered with the "list" preset
    instead of failing the request. The MCP tool signatures only admit
    known presets.

    Args:
        preset: Preset name (list, read, forensic, export, search,
            delta, conversation)

    Returns:
        Tuple of Graph message field names
    """
    fields = FIELD_PRESETS.get(preset)
    if fields is None:
        logger.warning(
            "Unknown field preset %r, falling back to 'list'", preset
        )
        return FIELD_PRESETS["list"]
    return fields


def folder_fields_for(preset: str = "basic") -> tuple[str, ...]:
    """Get the field list for a folder preset, falling back to "basic"."""
    fields = FOLDER_FIELDS.get(preset)
    if fields is None:
        logger.warning(
            "Unknown folder preset %r, falling back to 'basic'", preset
        )
        return FOLDER_FIELDS["basic"]
    return fields
