"""简体中文翻译表。"""

STRINGS: dict[str, str] = {
    # ── 房主 ──
    "error.room_code_in_use": "房间码已被占用，请重试。",
    "error.network": "网络错误，请检查网络连接。",
    "error.server": "服务器错误，中继服务可能已停止。",
    "error.transport": "连接错误: {kind}",
    "error.transport_unavailable": "网络传输不可用，请确认已连接互联网。",
    "error.game_start_failed": "无法开始游戏。",
    # ── 加入 ──
    "error.room_not_found": "房间不存在，请检查房间码并确认房主在线。",
    "error.join_failed": "无法连接: {kind}",
    "error.join_timeout": "无法连接到房间，房主可能不存在或处于防火墙之后。",
    "error.host_lost": "与房主的连接已断开",
    "error.channel": "连接错误: {detail}",
    # ── 成员 ──
    "error.room_full": "房间已满",
    "error.name_taken": "昵称 {name} 已被房间内其他玩家使用",
    "error.invalid_name": "昵称须为 1 到 32 个字符且不能全为空白",
    "error.invalid_chat": "聊天内容须为字段映射 (如 from、text)",
    # ── 中继 ──
    "relay.starting": "中继服务监听 ws://{host}:{port}",
    "relay.stopped": "中继服务已停止",
}
