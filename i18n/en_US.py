"""English translation table."""

STRINGS: dict[str, str] = {
    # ── host ──
    "error.room_code_in_use": "Room code already in use. Try again.",
    "error.network": "Network error. Check your internet connection.",
    "error.server": "Server error. The relay server may be down.",
    "error.transport": "Connection error: {kind}",
    "error.transport_unavailable": "Network transport not available. Make sure you have an internet connection.",
    "error.game_start_failed": "Could not start the game.",

    # ── join ──
    "error.room_not_found": "Room not found. Check the room code and make sure the host is online.",
    "error.join_failed": "Could not connect: {kind}",
    "error.join_timeout": "Could not connect to room. The host may not exist or may be behind a firewall.",
    "error.host_lost": "Lost connection to host",
    "error.channel": "Connection error: {detail}",

    # ── membership ──
    "error.room_full": "Room is full",
    "error.name_taken": "The name {name} is already taken in this room",
    "error.invalid_name": "Player names must be 1 to 32 characters and not blank",
    "error.invalid_chat": "Chat messages must be a set of fields such as from and text",

    # ── relay ──
    "relay.starting": "Relay listening on ws://{host}:{port}",
    "relay.stopped": "Relay stopped",
}
