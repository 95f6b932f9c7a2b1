import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class Status(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class InvalidTransitionError(RuntimeError):
    pass


@dataclass(frozen=True)
class ViewState:
    """单个视图的请求状态：同一时刻最多一个进行中的请求。"""

    status: Status = Status.IDLE
    data: Any = None
    error: Optional[str] = None
    # 结果所属的输入（如上传文件 id），输入变化后旧结果作废
    owner: Optional[str] = None

    @property
    def can_submit(self) -> bool:
        return self.status != Status.LOADING

    @property
    def is_loading(self) -> bool:
        return self.status == Status.LOADING

    def start(self) -> "ViewState":
        if not self.can_submit:
            raise InvalidTransitionError("上一个请求尚未结束")
        # 保留旧数据，新结果到达前界面仍可展示
        return replace(self, status=Status.LOADING, error=None)

    def succeed(self, data: Any) -> "ViewState":
        if self.status != Status.LOADING:
            raise InvalidTransitionError(f"无法从 {self.status.value} 进入 ready")
        return replace(self, status=Status.READY, data=data, error=None)

    def fail(self, error: Any) -> "ViewState":
        if self.status != Status.LOADING:
            raise InvalidTransitionError(f"无法从 {self.status.value} 进入 failed")
        return replace(self, status=Status.FAILED, data=None, error=str(error))

    def reset(self) -> "ViewState":
        if self.status == Status.LOADING:
            raise InvalidTransitionError("请求进行中，无法重置")
        return ViewState(owner=self.owner)

    def bind(self, owner: Optional[str]) -> "ViewState":
        if owner == self.owner:
            return self
        return ViewState(owner=owner)


def run_request(state: ViewState, action: Callable[[], Any], on_change: Optional[Callable[[ViewState], None]] = None) -> ViewState:
    state = state.start()
    if on_change:
        on_change(state)
    try:
        result = action()
    except Exception as e:
        # 每次失败都终止本次操作，由用户重新触发
        logger.warning("请求失败: %s", e)
        state = state.fail(e)
    else:
        state = state.succeed(result)
    if on_change:
        on_change(state)
    return state
