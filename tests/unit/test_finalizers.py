"""Tests for finalizer guards."""

import pytest
from conftest import make_resource, make_test

from testsys.model.exceptions import DuplicateFinalizerError, MissingFinalizerError
from testsys.model.finalizers import (
    Finalizer,
    add_finalizer,
    has_finalizer,
    has_finalizers,
    remove_finalizer,
)


class TestFinalizers:
    def test_names_share_one_domain(self):
        assert {f.value.split("/")[0] for f in Finalizer} == {"testsys.dev"}
        assert len({f.value for f in Finalizer}) == len(Finalizer)

    def test_add_appends(self):
        resource = make_resource(finalizers=[Finalizer.MAIN.value])
        assert add_finalizer(resource, Finalizer.RESOURCE) == [
            Finalizer.MAIN.value,
            Finalizer.RESOURCE.value,
        ]

    def test_add_does_not_mutate_object(self):
        resource = make_resource()
        add_finalizer(resource, Finalizer.MAIN)
        assert resource.metadata.finalizers == []

    def test_add_duplicate_raises(self):
        test = make_test("t1", finalizers=[Finalizer.MAIN.value])
        with pytest.raises(DuplicateFinalizerError, match="t1") as exc_info:
            add_finalizer(test, Finalizer.MAIN)
        assert exc_info.value.finalizer == Finalizer.MAIN.value

    def test_remove_keeps_others(self):
        resource = make_resource(
            finalizers=[
                Finalizer.MAIN.value,
                Finalizer.CREATION_JOB.value,
                Finalizer.RESOURCE.value,
            ]
        )
        assert remove_finalizer(resource, Finalizer.CREATION_JOB) == [
            Finalizer.MAIN.value,
            Finalizer.RESOURCE.value,
        ]

    def test_remove_missing_raises(self):
        resource = make_resource("r1")
        with pytest.raises(MissingFinalizerError, match="r1"):
            remove_finalizer(resource, Finalizer.RESOURCE)

    def test_queries(self):
        resource = make_resource(finalizers=[Finalizer.MAIN.value])
        assert has_finalizers(resource)
        assert has_finalizer(resource, Finalizer.MAIN)
        assert not has_finalizer(resource, Finalizer.RESOURCE)
        assert not has_finalizers(make_resource())

    def test_foreign_finalizers_are_kept(self):
        resource = make_resource(finalizers=["example.com/other", Finalizer.MAIN.value])
        assert remove_finalizer(resource, Finalizer.MAIN) == ["example.com/other"]

    def test_add_resource_guard_twice_fails(self):
        resource = make_resource(finalizers=[Finalizer.MAIN.value, Finalizer.RESOURCE.value])
        with pytest.raises(DuplicateFinalizerError):
            add_finalizer(resource, Finalizer.RESOURCE)
