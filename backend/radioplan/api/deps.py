from typing import Optional

from fastapi import Header


async def get_actor(x_actor: Optional[str] = Header(default=None, max_length=255)) -> Optional[str]:
    """Кто выполняет действие (для журнала резервов). Заголовок X-Actor, необязательный."""
    return (x_actor or "").strip() or None
