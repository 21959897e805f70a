"""Tests for the processor registry."""

import pytest

from bgjobs.jobs.models import Job
from bgjobs.jobs.registry import ProcessorRegistry, job_processor


async def echo(job: Job) -> dict:
    return {"echo": job.data.get("value")}


async def other(job: Job) -> None:
    return None


class TestProcessorRegistry:
    """Tests for ProcessorRegistry."""

    @pytest.fixture
    def registry(self) -> ProcessorRegistry:
        return ProcessorRegistry()

    def test_register_and_get(self, registry: ProcessorRegistry) -> None:
        """Registered processors can be looked up by type."""
        registry.register("echo", echo)

        assert registry.has("echo")
        assert registry.get("echo") is echo
        assert registry.get("missing") is None

    def test_reregister_overwrites(self, registry: ProcessorRegistry) -> None:
        """Registering the same type again replaces the processor."""
        registry.register("echo", echo)
        registry.register("echo", other)

        assert registry.get("echo") is other
        assert len(registry) == 1

    def test_types_in_registration_order(self, registry: ProcessorRegistry) -> None:
        """types() lists job types in registration order."""
        registry.register("b", echo)
        registry.register("a", other)

        assert registry.types() == ["b", "a"]

    def test_unregister(self, registry: ProcessorRegistry) -> None:
        """Unregister removes a type and reports whether it existed."""
        registry.register("echo", echo)

        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False
        assert not registry.has("echo")


class TestJobProcessorDecorator:
    """Tests for @job_processor decorator."""

    def test_decorator_sets_job_type(self) -> None:
        """Decorator tags the function with its job type."""

        @job_processor("cdn-purge")
        async def purge(job: Job) -> None:
            pass

        assert purge.__job_type__ == "cdn-purge"  # type: ignore[attr-defined]

    def test_register_all(self) -> None:
        """Tagged processors register under their job type."""

        @job_processor("first")
        async def first(job: Job) -> None:
            pass

        @job_processor("second")
        async def second(job: Job) -> None:
            pass

        registry = ProcessorRegistry()
        registry.register_all([first, second])

        assert registry.types() == ["first", "second"]

    def test_register_all_rejects_untagged(self) -> None:
        """Untagged processors cannot be bulk-registered."""
        registry = ProcessorRegistry()

        with pytest.raises(ValueError, match="not tagged"):
            registry.register_all([echo])
