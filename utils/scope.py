import asyncio
import logging
from typing import Awaitable, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScopeClosedError(Exception):
    """Work was started on, or finished after, a closed screen scope."""
    pass


class ScreenScope:
    """
    화면(뷰 모델) 수명에 묶인 비동기 작업 범위

    run()으로 시작한 작업은 close() 시 모두 취소된다.
    close() 이후 끝난 작업의 결과는 ScopeClosedError로 바뀌어 화면 상태에 반영되지 않는다.
    """

    def __init__(self, name: str = "screen"):
        self.name = name
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()

    async def run(self, awaitable: Awaitable[T]) -> T:
        if self.closed:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ScopeClosedError(f"Scope '{self.name}' is closed")

        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            result = await task
        except asyncio.CancelledError:
            if self.closed:
                raise ScopeClosedError(f"Scope '{self.name}' closed while work was in flight")
            raise
        finally:
            self._tasks.discard(task)

        if self.closed:
            raise ScopeClosedError(f"Scope '{self.name}' closed before result was applied")
        return result

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def close(self) -> None:
        """진행 중인 모든 작업 취소 후 완료될 때까지 대기"""
        if self.closed:
            return
        self.closed = True

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug(f"Scope '{self.name}' cancelled {len(tasks)} in-flight task(s)")
