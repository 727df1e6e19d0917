"""The controller: action engines and the reconcilers that carry them out."""

from .reconcile import Controller, JobLauncher, ResourceReconciler, TestReconciler
from .resource_action import ResourceSnapshot, decide_resource_action
from .test_action import TestSnapshot, decide_test_action

__all__ = [
    "Controller",
    "JobLauncher",
    "ResourceReconciler",
    "ResourceSnapshot",
    "TestReconciler",
    "TestSnapshot",
    "decide_resource_action",
    "decide_test_action",
]
