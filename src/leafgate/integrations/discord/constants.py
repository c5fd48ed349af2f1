from __future__ import annotations

DISCORD_API_BASE_URL = "https://discord.com/api/v10"

# Interaction types (https://discord.com/developers/docs/interactions/receiving-and-responding).
INTERACTION_TYPE_PING = 1
INTERACTION_TYPE_APPLICATION_COMMAND = 2
INTERACTION_TYPE_MESSAGE_COMPONENT = 3
INTERACTION_TYPE_AUTOCOMPLETE = 4
INTERACTION_TYPE_MODAL_SUBMIT = 5

# Interaction callback types.
RESPONSE_TYPE_CHANNEL_MESSAGE = 4
RESPONSE_TYPE_AUTOCOMPLETE_RESULT = 8

MESSAGE_FLAG_EPHEMERAL = 1 << 6

# Application command option types.
OPTION_TYPE_SUB_COMMAND = 1
OPTION_TYPE_SUB_COMMAND_GROUP = 2
OPTION_TYPE_STRING = 3
OPTION_TYPE_INTEGER = 4
OPTION_TYPE_BOOLEAN = 5
OPTION_TYPE_USER = 6
OPTION_TYPE_CHANNEL = 7
OPTION_TYPE_ROLE = 8
OPTION_TYPE_MENTIONABLE = 9
OPTION_TYPE_NUMBER = 10
OPTION_TYPE_ATTACHMENT = 11

SUBCOMMAND_OPTION_TYPES = frozenset(
    {OPTION_TYPE_SUB_COMMAND, OPTION_TYPE_SUB_COMMAND_GROUP}
)

# Component types that carry modal values.
COMPONENT_TYPE_ACTION_ROW = 1
COMPONENT_TYPE_TEXT_INPUT = 4
COMPONENT_TYPE_LABEL = 18

# Channel types.
CHANNEL_TYPE_GUILD_TEXT = 0
CHANNEL_TYPE_DM = 1
CHANNEL_TYPE_GUILD_VOICE = 2
CHANNEL_TYPE_GROUP_DM = 3
CHANNEL_TYPE_GUILD_CATEGORY = 4
CHANNEL_TYPE_GUILD_ANNOUNCEMENT = 5
CHANNEL_TYPE_ANNOUNCEMENT_THREAD = 10
CHANNEL_TYPE_PUBLIC_THREAD = 11
CHANNEL_TYPE_PRIVATE_THREAD = 12
CHANNEL_TYPE_GUILD_STAGE_VOICE = 13
CHANNEL_TYPE_GUILD_DIRECTORY = 14
CHANNEL_TYPE_GUILD_FORUM = 15
CHANNEL_TYPE_GUILD_MEDIA = 16

THREAD_CHANNEL_TYPES = frozenset(
    {
        CHANNEL_TYPE_ANNOUNCEMENT_THREAD,
        CHANNEL_TYPE_PUBLIC_THREAD,
        CHANNEL_TYPE_PRIVATE_THREAD,
    }
)

# Channels a slash command can be invoked from and replied to in text.
TEXT_CHANNEL_TYPES = frozenset(
    {
        CHANNEL_TYPE_GUILD_TEXT,
        CHANNEL_TYPE_DM,
        CHANNEL_TYPE_GUILD_VOICE,
        CHANNEL_TYPE_GROUP_DM,
        CHANNEL_TYPE_GUILD_ANNOUNCEMENT,
        CHANNEL_TYPE_ANNOUNCEMENT_THREAD,
        CHANNEL_TYPE_PUBLIC_THREAD,
        CHANNEL_TYPE_PRIVATE_THREAD,
        CHANNEL_TYPE_GUILD_STAGE_VOICE,
    }
)

# Overwrite target types.
OVERWRITE_TYPE_ROLE = 0
OVERWRITE_TYPE_MEMBER = 1

# Permission flags (https://discord.com/developers/docs/topics/permissions).
PERMISSION_FLAGS: dict[str, int] = {
    "CREATE_INSTANT_INVITE": 1 << 0,
    "KICK_MEMBERS": 1 << 1,
    "BAN_MEMBERS": 1 << 2,
    "ADMINISTRATOR": 1 << 3,
    "MANAGE_CHANNELS": 1 << 4,
    "MANAGE_GUILD": 1 << 5,
    "ADD_REACTIONS": 1 << 6,
    "VIEW_AUDIT_LOG": 1 << 7,
    "PRIORITY_SPEAKER": 1 << 8,
    "STREAM": 1 << 9,
    "VIEW_CHANNEL": 1 << 10,
    "SEND_MESSAGES": 1 << 11,
    "SEND_TTS_MESSAGES": 1 << 12,
    "MANAGE_MESSAGES": 1 << 13,
    "EMBED_LINKS": 1 << 14,
    "ATTACH_FILES": 1 << 15,
    "READ_MESSAGE_HISTORY": 1 << 16,
    "MENTION_EVERYONE": 1 << 17,
    "USE_EXTERNAL_EMOJIS": 1 << 18,
    "VIEW_GUILD_INSIGHTS": 1 << 19,
    "CONNECT": 1 << 20,
    "SPEAK": 1 << 21,
    "MUTE_MEMBERS": 1 << 22,
    "DEAFEN_MEMBERS": 1 << 23,
    "MOVE_MEMBERS": 1 << 24,
    "USE_VAD": 1 << 25,
    "CHANGE_NICKNAME": 1 << 26,
    "MANAGE_NICKNAMES": 1 << 27,
    "MANAGE_ROLES": 1 << 28,
    "MANAGE_WEBHOOKS": 1 << 29,
    "MANAGE_GUILD_EXPRESSIONS": 1 << 30,
    "USE_APPLICATION_COMMANDS": 1 << 31,
    "REQUEST_TO_SPEAK": 1 << 32,
    "MANAGE_EVENTS": 1 << 33,
    "MANAGE_THREADS": 1 << 34,
    "CREATE_PUBLIC_THREADS": 1 << 35,
    "CREATE_PRIVATE_THREADS": 1 << 36,
    "USE_EXTERNAL_STICKERS": 1 << 37,
    "SEND_MESSAGES_IN_THREADS": 1 << 38,
    "USE_EMBEDDED_ACTIVITIES": 1 << 39,
    "MODERATE_MEMBERS": 1 << 40,
    "VIEW_CREATOR_MONETIZATION_ANALYTICS": 1 << 41,
    "USE_SOUNDBOARD": 1 << 42,
    "CREATE_GUILD_EXPRESSIONS": 1 << 43,
    "CREATE_EVENTS": 1 << 44,
    "USE_EXTERNAL_SOUNDS": 1 << 45,
    "SEND_VOICE_MESSAGES": 1 << 46,
    "SEND_POLLS": 1 << 49,
    "USE_EXTERNAL_APPS": 1 << 50,
    "PIN_MESSAGES": 1 << 51,
}

ALL_PERMISSIONS = 0
for _bit in PERMISSION_FLAGS.values():
    ALL_PERMISSIONS |= _bit
del _bit

# Autocomplete limits.
AUTOCOMPLETE_MAX_CHOICES = 10
AUTOCOMPLETE_MAX_MATCHES = 500
