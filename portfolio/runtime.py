"""
Store Runtime Module.

Runs blocking portfolio cache/store calls on a dedicated thread pool so the
event loop never waits on disk I/O.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, TypeVar

T = TypeVar("T")


@dataclass
class StoreRuntime:
    """ディスクI/O専用スレッドプール（直列化はキャッシュ側のLockが担う）"""

    max_workers: int = 4
    executor: ThreadPoolExecutor = field(init=False)

    def __post_init__(self) -> None:
        self.executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="portfolio-io"
        )

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """ブロッキング関数をスレッドプールで実行して結果を待つ"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, lambda: fn(*args, **kwargs))

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
