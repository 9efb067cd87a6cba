"""Subjects and the executors that run them against source files."""

from bunch_import.framework.subjects.base import Subject
from bunch_import.framework.subjects.executor import CsvSubjectExecutor, ExecutionResult, SubjectExecutor

__all__ = ["Subject", "SubjectExecutor", "CsvSubjectExecutor", "ExecutionResult"]
