"""
Tests for bunch_import.framework.plugins.subject_plugin module.

Tests cover:
- Zero subjects: two merges, one stop, no bunches
- One file imported: two merges, bunch count +1, lock released once
- Executor failure: lock released, no bunch, continue or halt per fatal policy
- Skipped files, resolver reset, multi-subject ordering
- Failing resolver factory, lock release, ok-file cleanup and reset
- Fatal policies
"""

from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from bunch_import.core.errors import ConfigError, ExecutionError, FatalRunError, LockError, LockTimeoutError
from bunch_import.core.registry import CacheKeys, InMemoryRegistry, Increment, RegistryKeys
from bunch_import.framework.config import PluginConfiguration, SubjectConfiguration
from bunch_import.framework.plugins import (
    PluginState,
    SubjectPlugin,
    always_fatal,
    is_fatal,
    never_fatal,
)

BUNCH = "/data/product-import_20170720-125052_01.csv"


@pytest.fixture
def application():
    application = MagicMock(name="application")
    application.serial = "serial-1"
    return application


@pytest.fixture
def executor():
    return MagicMock(name="subject_executor")


@pytest.fixture
def locks():
    """Lock factory recording one mock lock per path."""
    created = {}

    def factory(path):
        lock = created.setdefault(path, MagicMock(name=f"lock:{path}"))
        return lock

    factory.created = created
    return factory


def make_resolver(*paths, handled=True):
    resolver = MagicMock(name="resolver")
    resolver.load_files.return_value = list(paths)
    resolver.get_matches.return_value = [{"path": p} for p in paths]
    if callable(handled):
        resolver.should_be_handled.side_effect = handled
    else:
        resolver.should_be_handled.return_value = handled
    return resolver


def make_factory(*resolvers):
    factory = MagicMock(name="file_resolver_factory")
    factory.create_file_resolver.side_effect = list(resolvers)
    return factory


def subject_config(id="products", prefix="product-import"):
    return SubjectConfiguration(id=id, prefix=prefix)


def make_plugin(application, executor, factory, subjects, locks, **kwargs):
    return SubjectPlugin(
        application,
        executor,
        factory,
        PluginConfiguration(subjects=subjects),
        lock_factory=locks,
        **kwargs,
    )


class TestProcessWithoutSubjects:
    def test_two_merges_and_one_stop(self, application, executor, locks):
        registry = application.registry_processor
        plugin = make_plugin(application, executor, make_factory(), [], locks)

        plugin.process()

        assert registry.merge_attributes_recursive.call_args_list == [
            call(CacheKeys.STATUS, {}),
            call(
                CacheKeys.STATUS,
                {
                    RegistryKeys.BUNCHES: Increment(0),
                    RegistryKeys.FAILED: Increment(0),
                    RegistryKeys.SERIAL: "serial-1",
                    RegistryKeys.SUBJECTS: {},
                },
            ),
        ]
        application.stop.assert_called_once_with("no files processed")
        executor.execute.assert_not_called()
        assert plugin.bunches == 0
        assert plugin.state is PluginState.DONE

    def test_status_in_real_registry(self, application, executor, locks):
        application.registry_processor = InMemoryRegistry()
        make_plugin(application, executor, make_factory(), [], locks).process()
        assert application.registry_processor.get_attribute(CacheKeys.STATUS) == {
            "bunches": 0,
            "failed": 0,
            "serial": "serial-1",
            "subjects": {},
        }


class TestProcessWithOneSubject:
    def test_success(self, application, executor, locks):
        resolver = make_resolver(BUNCH)
        subject = subject_config()
        registry = application.registry_processor
        plugin = make_plugin(application, executor, make_factory(resolver), [subject], locks)

        plugin.process()

        executor.execute.assert_called_once_with(subject, BUNCH)
        resolver.load_files.assert_called_once_with()
        resolver.should_be_handled.assert_called_once_with(BUNCH)
        resolver.clean_up_ok_file.assert_called_once_with(BUNCH)
        resolver.get_matches.assert_called_once_with()
        resolver.reset.assert_called_once_with()

        assert registry.merge_attributes_recursive.call_count == 2
        assert registry.merge_attributes_recursive.call_args_list[0] == call(CacheKeys.STATUS, {"product-import": {}})
        final = registry.merge_attributes_recursive.call_args_list[1].args[1]
        assert final[RegistryKeys.BUNCHES] == Increment(1)
        assert final[RegistryKeys.FAILED] == Increment(0)
        assert final[RegistryKeys.SUBJECTS]["products"] == {
            "prefix": "product-import",
            "matches": 1,
            "bunches": 1,
            "failed": 0,
            "skipped": 0,
        }
        assert RegistryKeys.ERRORS not in final

        lock = locks.created[BUNCH]
        lock.acquire.assert_called_once_with()
        lock.release.assert_called_once_with()
        application.stop.assert_not_called()
        assert plugin.bunches == 1

    def test_lock_held_during_execute(self, application, executor, locks):
        order = []
        executor.execute.side_effect = lambda *_: order.append("execute")
        lock = MagicMock()
        lock.acquire.side_effect = lambda: order.append("acquire")
        lock.release.side_effect = lambda: order.append("release")

        plugin = make_plugin(
            application, executor, make_factory(make_resolver(BUNCH)), [subject_config()], lambda path: lock
        )
        plugin.process()

        assert order == ["acquire", "execute", "release"]

    def test_not_handled_file_is_skipped(self, application, executor, locks):
        resolver = make_resolver(BUNCH, handled=False)
        plugin = make_plugin(application, executor, make_factory(resolver), [subject_config()], locks)

        plugin.process()

        executor.execute.assert_not_called()
        resolver.clean_up_ok_file.assert_not_called()
        assert locks.created == {}
        assert plugin.bunches == 0
        application.stop.assert_called_once_with("no files processed")

    def test_no_matches_still_merges_twice(self, application, executor, locks):
        registry = application.registry_processor
        plugin = make_plugin(application, executor, make_factory(make_resolver()), [subject_config()], locks)

        plugin.process()

        assert registry.merge_attributes_recursive.call_count == 2
        final = registry.merge_attributes_recursive.call_args_list[1].args[1]
        assert final[RegistryKeys.SUBJECTS]["products"]["matches"] == 0
        application.stop.assert_called_once_with("no files processed")


class TestProcessWithException:
    def test_failure_continues_by_default(self, application, executor, locks):
        second = "/data/product-import_20170720-125052_02.csv"
        executor.execute.side_effect = [ExecutionError("Can't import file"), None]
        resolver = make_resolver(BUNCH, second)
        registry = application.registry_processor
        plugin = make_plugin(application, executor, make_factory(resolver), [subject_config()], locks)

        plugin.process()

        assert executor.execute.call_count == 2
        resolver.clean_up_ok_file.assert_called_once_with(second)
        locks.created[BUNCH].release.assert_called_once_with()
        locks.created[second].release.assert_called_once_with()
        assert (plugin.bunches, plugin.failed) == (1, 1)
        assert plugin.fatal_error is None

        final = registry.merge_attributes_recursive.call_args_list[1].args[1]
        assert final[RegistryKeys.BUNCHES] == Increment(1)
        assert final[RegistryKeys.FAILED] == Increment(1)
        (error,) = final[RegistryKeys.ERRORS]
        assert error["error_type"] == "ExecutionError"
        assert error["context"]["path"] == BUNCH
        assert error["context"]["subject"] == "products"
        application.stop.assert_not_called()

    def test_failure_only_file_stops_as_empty_run(self, application, executor, locks):
        executor.execute.side_effect = RuntimeError("Can't import file")
        resolver = make_resolver(BUNCH)
        plugin = make_plugin(application, executor, make_factory(resolver), [subject_config()], locks)

        plugin.process()

        resolver.clean_up_ok_file.assert_not_called()
        locks.created[BUNCH].release.assert_called_once_with()
        assert plugin.bunches == 0
        application.stop.assert_called_once_with("no files processed")

    def test_fatal_failure_halts_run(self, application, executor, locks):
        second = "/data/product-import_20170720-125052_02.csv"
        executor.execute.side_effect = FatalRunError("Can't import file")
        resolver = make_resolver(BUNCH, second)
        factory = make_factory(resolver, make_resolver("/data/category-import_1_01.csv"))
        registry = application.registry_processor
        plugin = make_plugin(
            application,
            executor,
            factory,
            [subject_config(), subject_config("categories", "category-import")],
            locks,
        )

        plugin.process()

        executor.execute.assert_called_once()
        assert second not in locks.created
        locks.created[BUNCH].release.assert_called_once_with()
        resolver.reset.assert_called_once_with()
        assert factory.create_file_resolver.call_count == 1
        assert registry.merge_attributes_recursive.call_count == 2
        assert isinstance(plugin.fatal_error, FatalRunError)
        application.stop.assert_called_once_with("fatal error: Can't import file")

    def test_halt_policy_makes_any_failure_fatal(self, application, executor, locks):
        executor.execute.side_effect = ExecutionError("Can't import file")
        plugin = make_plugin(
            application,
            executor,
            make_factory(make_resolver(BUNCH, "/data/product-import_2_01.csv")),
            [subject_config()],
            locks,
            fatal_policy=always_fatal,
        )

        plugin.process()

        executor.execute.assert_called_once()
        application.stop.assert_called_once()
        assert application.stop.call_args.args[0].startswith("fatal error")

    def test_never_fatal_policy(self, application, executor, locks):
        executor.execute.side_effect = FatalRunError("boom")
        plugin = make_plugin(
            application,
            executor,
            make_factory(make_resolver(BUNCH, "/data/product-import_2_01.csv")),
            [subject_config()],
            locks,
            fatal_policy=never_fatal,
        )

        plugin.process()

        assert executor.execute.call_count == 2
        assert plugin.fatal_error is None

    def test_lock_failure_counts_as_failed_file(self, application, executor):
        lock = MagicMock()
        lock.acquire.side_effect = LockTimeoutError("/data/x.lock", 1)
        plugin = make_plugin(
            application, executor, make_factory(make_resolver(BUNCH)), [subject_config()], lambda path: lock
        )

        plugin.process()

        executor.execute.assert_not_called()
        lock.release.assert_not_called()
        assert plugin.failed == 1

    def test_resolver_failure_counts_and_resets(self, application, executor, locks):
        resolver = make_resolver()
        resolver.load_files.side_effect = OSError("no such directory")
        plugin = make_plugin(application, executor, make_factory(resolver), [subject_config()], locks)

        plugin.process()

        resolver.reset.assert_called_once_with()
        assert plugin.failed == 1
        assert plugin._errors[0]["category"] == "STORAGE"


class TestCollaboratorFailures:
    def test_resolver_creation_failure_moves_to_next_subject(self, application, executor, locks):
        categories_file = "/data/category-import_1_01.csv"
        categories = subject_config("categories", "category-import")
        factory = make_factory(OSError("bad source"), make_resolver(categories_file))
        registry = application.registry_processor
        plugin = make_plugin(application, executor, factory, [subject_config(), categories], locks)

        plugin.process()

        executor.execute.assert_called_once_with(categories, categories_file)
        assert (plugin.bunches, plugin.failed) == (1, 1)
        assert registry.merge_attributes_recursive.call_count == 2
        final = registry.merge_attributes_recursive.call_args_list[1].args[1]
        assert final[RegistryKeys.SUBJECTS]["products"]["failed"] == 1
        assert final[RegistryKeys.ERRORS][0]["message"] == "bad source"
        application.stop.assert_not_called()

    def test_release_failure_keeps_importing(self, application, executor):
        second = "/data/product-import_20170720-125052_02.csv"
        lock = MagicMock()
        lock.release.side_effect = LockError("Can't remove lock")
        registry = application.registry_processor
        plugin = make_plugin(
            application, executor, make_factory(make_resolver(BUNCH, second)), [subject_config()], lambda path: lock
        )

        plugin.process()

        assert executor.execute.call_count == 2
        assert lock.release.call_count == 2
        assert (plugin.bunches, plugin.failed) == (2, 0)
        assert registry.merge_attributes_recursive.call_count == 2
        assert plugin.state is PluginState.DONE

    def test_release_failure_does_not_mask_execution_error(self, application, executor):
        lock = MagicMock()
        lock.release.side_effect = LockError("Can't remove lock")
        executor.execute.side_effect = ExecutionError("Can't import file")
        plugin = make_plugin(
            application, executor, make_factory(make_resolver(BUNCH)), [subject_config()], lambda path: lock
        )

        plugin.process()

        (error,) = plugin._errors
        assert error["error_type"] == "ExecutionError"
        application.stop.assert_called_once_with("no files processed")

    def test_ok_file_cleanup_failure_keeps_bunch(self, application, executor, locks):
        resolver = make_resolver(BUNCH)
        resolver.clean_up_ok_file.side_effect = OSError("read-only file system")
        registry = application.registry_processor
        plugin = make_plugin(application, executor, make_factory(resolver), [subject_config()], locks)

        plugin.process()

        resolver.clean_up_ok_file.assert_called_once_with(BUNCH)
        locks.created[BUNCH].release.assert_called_once_with()
        assert (plugin.bunches, plugin.failed) == (1, 0)
        final = registry.merge_attributes_recursive.call_args_list[1].args[1]
        assert RegistryKeys.ERRORS not in final
        application.stop.assert_not_called()

    def test_reset_failure_moves_to_next_subject(self, application, executor, locks):
        categories_file = "/data/category-import_1_01.csv"
        first = make_resolver(BUNCH)
        first.reset.side_effect = RuntimeError("reset failed")
        factory = make_factory(first, make_resolver(categories_file))
        registry = application.registry_processor
        plugin = make_plugin(
            application,
            executor,
            factory,
            [subject_config(), subject_config("categories", "category-import")],
            locks,
        )

        plugin.process()

        assert executor.execute.call_count == 2
        assert plugin.bunches == 2
        assert registry.merge_attributes_recursive.call_count == 2


class TestMultipleSubjects:
    def test_subjects_in_order(self, application, executor, locks):
        categories_file = "/data/category-import_1_01.csv"
        products, categories = subject_config(), subject_config("categories", "category-import")
        factory = make_factory(make_resolver(BUNCH), make_resolver(categories_file))
        registry = application.registry_processor
        plugin = make_plugin(application, executor, factory, [products, categories], locks)

        plugin.process()

        assert executor.execute.call_args_list == [call(products, BUNCH), call(categories, categories_file)]
        assert factory.create_file_resolver.call_args_list == [call(products), call(categories)]
        assert registry.merge_attributes_recursive.call_args_list[0] == call(
            CacheKeys.STATUS, {"product-import": {}, "category-import": {}}
        )
        final = registry.merge_attributes_recursive.call_args_list[1].args[1]
        assert final[RegistryKeys.BUNCHES] == Increment(2)
        assert list(final[RegistryKeys.SUBJECTS]) == ["products", "categories"]


class TestFatalPolicies:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (FatalRunError("x"), True),
            (ConfigError("x"), True),
            (ExecutionError("x"), False),
            (RuntimeError("x"), False),
        ],
    )
    def test_is_fatal(self, error, expected):
        assert is_fatal(error) is expected

    def test_never_and_always(self):
        assert never_fatal(FatalRunError("x")) is False
        assert always_fatal(RuntimeError("x")) is True


class TestWithRealCollaborators:
    def test_imports_real_files(self, application, make_config, write_csv, write_ok, tmp_path):
        from bunch_import.core.locks import file_lock_factory
        from bunch_import.core.sqlite_conn import SqliteConnection
        from bunch_import.framework.processors import SqliteRowProcessor
        from bunch_import.framework.resolvers import DefaultFileResolverFactory
        from bunch_import.framework.subjects import CsvSubjectExecutor

        application.registry_processor = InMemoryRegistry()
        first = write_csv("product-import_20240101-000000_01.csv", ["sku"], ["A-1"], ["A-2"])
        write_csv("product-import_20240101-000000_02.csv", ["sku"], ["A-3"])
        ok_file = write_ok("product-import.ok", first.name)
        config = make_config(ok_file_needed=True, callbacks={"import": ["strip"]})

        conn = SqliteConnection(":memory:")
        processor = SqliteRowProcessor(conn)
        executor = CsvSubjectExecutor(application.registry_processor, processor, serial="serial-1")
        plugin = SubjectPlugin(
            application,
            executor,
            DefaultFileResolverFactory(),
            PluginConfiguration(subjects=[config]),
            lock_factory=file_lock_factory(owner="serial-1", poll_interval=0.01, timeout=1),
        )

        plugin.process()

        status = application.registry_processor.get_attribute(CacheKeys.STATUS)
        assert status["bunches"] == 1
        assert status["subjects"]["products"]["skipped"] == 1
        assert processor.count_rows() == 2
        assert not ok_file.exists()
        assert not Path(str(first) + ".lock").exists()
        application.stop.assert_not_called()
        conn.close()
