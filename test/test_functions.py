import threading

import pytest

from datajobs.modules.scheduler.exceptions import FunctionNotFoundError, JobConfigurationError
from datajobs.modules.scheduler.functions import FunctionRegistry


def double(value):
    return value * 2


@pytest.mark.asyncio
async def test_registered_functions():
    registry = FunctionRegistry()

    @registry.register("summary")
    def summary(table):
        return {"rows_returned": 4, "table": table}

    registry.register("nothing", lambda: None)

    assert registry.names() == ["nothing", "summary"]
    assert await registry.invoke("summary", {"table": "t"}) == {"rows_returned": 4, "table": "t"}
    assert await registry.invoke("nothing") == {}


@pytest.mark.asyncio
async def test_coroutine_function():
    registry = FunctionRegistry()

    @registry.register("fetch")
    async def fetch(n=1):
        return {"rows_returned": n}

    assert await registry.invoke("fetch", {"n": 5}) == {"rows_returned": 5}


@pytest.mark.asyncio
async def test_module_path_and_scalar_result():
    registry = FunctionRegistry()
    assert await registry.invoke("test_functions:double", {"value": 21}) == {"result": 42}


def test_unknown_functions():
    registry = FunctionRegistry()
    with pytest.raises(FunctionNotFoundError, match="is not registered"):
        registry.get("missing")
    with pytest.raises(FunctionNotFoundError, match="Cannot resolve function"):
        registry.get("no_such_module_xyz:run")
    with pytest.raises(JobConfigurationError):
        registry.get("test_functions:missing")


@pytest.mark.asyncio
async def test_plain_function_runs_off_the_event_loop_thread():
    registry = FunctionRegistry()
    registry.register("where", lambda: {"thread": threading.get_ident()})

    result = await registry.invoke("where")

    assert result["thread"] != threading.get_ident()
