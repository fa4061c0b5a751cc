import asyncio
import importlib
import inspect
from typing import Any, Callable, Dict, Optional

from datajobs.util import logger_util
from .exceptions import FunctionNotFoundError

logger = logger_util.get_logger(__name__)


def _resolve_func(path: str) -> Callable:
    """Resolves a function from a 'module.path:function_name' string."""
    if ':' not in path:
        raise FunctionNotFoundError(f"Function '{path}' is not registered")
    module_path, func_name = path.rsplit(':', 1)
    try:
        module = importlib.import_module(module_path)
        return getattr(module, func_name)
    except (ImportError, AttributeError) as e:
        raise FunctionNotFoundError(f"Cannot resolve function '{path}': {e}") from e


class FunctionRegistry:
    """
    Named callables that function-type jobs invoke with the job's parameters.

    A function receives the parameters as keyword arguments and may be a plain
    function or a coroutine function. It should return a summary dict; a
    ``rows_returned`` key and an ``output_preview`` list are recorded on the
    execution when present.
    """

    def __init__(self):
        self._functions: Dict[str, Callable] = {}

    def register(self, name: str, func: Optional[Callable] = None):
        if func is None:
            def decorator(f: Callable) -> Callable:
                self._functions[name] = f
                return f
            return decorator
        self._functions[name] = func
        return func

    def names(self):
        return sorted(self._functions)

    def get(self, name: str) -> Callable:
        if name in self._functions:
            return self._functions[name]
        return _resolve_func(name)

    async def invoke(self, name: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        func = self.get(name)
        logger.info(f"Executing function: {name} with params: {params}")
        kwargs = params or {}
        if inspect.iscoroutinefunction(func):
            result = await func(**kwargs)
        else:
            # Plain functions run on a worker thread.
            result = await asyncio.to_thread(func, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        if result is None:
            return {}
        if not isinstance(result, dict):
            return {'result': result}
        return result
