"""Tests for reading YAML manifests."""

import pytest

from testsys.model.manifest import convert_manifest, read_manifest
from testsys.model.models import DestructionPolicy, Resource, Test

MANIFEST = """\
apiVersion: testsys.dev/v1
kind: Resource
metadata:
  name: cluster
  labels:
    env: dev
spec:
  destructionPolicy: onTestSuccess
  agent:
    name: duplicator
    configuration:
      info: https://cluster.example.com
---
kind: Test
metadata:
  name: conformance
spec:
  resources: [cluster]
  retries: 2
  agent:
    name: echo
    timeout: 1h
    configuration:
      endpoint: ${cluster.info}
---
"""


class TestConvertManifest:
    def test_documents_in_order(self):
        resource, test = convert_manifest(MANIFEST)
        assert isinstance(resource, Resource)
        assert resource.metadata.labels == {"env": "dev"}
        assert resource.spec.destruction_policy == DestructionPolicy.ON_TEST_SUCCESS
        assert isinstance(test, Test)
        assert test.spec.resources == ["cluster"]
        assert test.spec.retries == 2
        assert test.spec.agent.configuration == {"endpoint": "${cluster.info}"}

    def test_empty(self):
        assert convert_manifest("") == []
        assert convert_manifest("---\n---\n") == []

    def test_not_a_mapping(self):
        with pytest.raises(ValueError, match="document 0 is not a mapping"):
            convert_manifest("- a\n- b\n")

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="document 0"):
            convert_manifest("kind: Pod\nmetadata:\n  name: x\n")

    def test_invalid_document_index(self):
        text = MANIFEST + "kind: Test\nmetadata:\n  name: broken\nspec: {}\n"
        with pytest.raises(ValueError, match="document 2 is invalid"):
            convert_manifest(text)


class TestReadManifest:
    def test_read(self, tmp_path):
        path = tmp_path / "tests.yaml"
        path.write_text(MANIFEST)
        assert [obj.name for obj in read_manifest(path)] == ["cluster", "conformance"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_manifest(tmp_path / "nope.yaml")
