"""Unit tests for the Builder."""

import pytest

from packsmith.build.builder import Builder, BuildError
from packsmith.core.runners import TaskStatus, series
from packsmith.utils.exceptions import CyclicTaskError, UnknownTaskError


@pytest.fixture
def builder(settings, logger_manager):
    return Builder(settings, logger_manager=logger_manager)


def test_engine_limits_parallelism(settings, logger_manager):
    builder = Builder(settings.model_copy(update={"max_parallel": 1}), logger_manager=logger_manager)

    assert "leaf_slots" in builder.engine.new_context().data


def test_plan_unknown_task(builder):
    with pytest.raises(UnknownTaskError):
        builder.plan("deploy-everything")


def test_plan_cycle(builder):
    """Test that a user task closing a cycle is reported when planned."""
    builder.registry.register("loop-a", series("loop-b"))
    builder.registry.register("loop-b", series("loop-a"))

    with pytest.raises(CyclicTaskError):
        builder.plan("loop-a")


@pytest.mark.asyncio
async def test_build_returns_result(builder):
    ran = []

    async def greet(context):
        ran.append(context.invocation_id)

    builder.registry.register("greet", greet)
    result = await builder.build("greet")

    assert result.ok
    assert result.name == "greet"
    assert len(ran) == 1


@pytest.mark.asyncio
async def test_build_failure_raises(builder):
    """Test that a failed task surfaces as BuildError carrying the result."""

    async def explode(context):
        raise RuntimeError("kaboom")

    builder.registry.register("explode", explode)
    builder.registry.register("wrapper", series("explode"))

    with pytest.raises(BuildError) as exc_info:
        await builder.build("wrapper")

    error = exc_info.value
    assert str(error) == "Task 'explode' failed: kaboom"
    assert error.result.status == TaskStatus.FAILED
    assert error.details["failed_task"] == "explode"
    assert isinstance(error.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_build_unknown_task(builder):
    with pytest.raises(UnknownTaskError):
        await builder.build("nope")
