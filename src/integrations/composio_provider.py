import os
from typing import Any, Callable

from src.config import Config

ToolExecutor = Callable[[str, dict[str, Any]], Any]


def build_tool_executor(user_id: str) -> ToolExecutor:
    Config.require_env("COMPOSIO_API_KEY")
    os.environ.setdefault("COMPOSIO_CACHE_DIR", ".composio-cache")
    from composio import Composio

    composio = Composio()

    def execute(slug: str, arguments: dict[str, Any]) -> Any:
        return composio.tools.execute(
            slug,
            arguments=arguments,
            user_id=user_id,
            dangerously_skip_version_check=True,
        )

    return execute
