import json
import shutil
import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from flowrunner.debug import DebugLog
from flowrunner.persistence import FileLock, atomic_write_text, read_models, write_model
from flowrunner.scheduling.logs import ExecutionLogEntry, ExecutionLogger
from flowrunner.scheduling.store import ScheduleStore, StoredSchedule
from flowrunner.workflow.schema import CronSchedule, IntervalSchedule, Workflow
from flowrunner.workflow.store import WorkflowStore


def _workflow(workflow_id: str, version: int = 1, name: str = "Flow") -> Workflow:
    return Workflow.model_validate(
        {
            "id": workflow_id,
            "name": name,
            "version": version,
            "nodes": [{"id": "a", "step": {"type": "navigate", "value": "https://example.com"}}],
            "schedule": {"type": "interval", "intervalMinutes": 5},
        }
    )


class PersistenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="persistence-tests-"))

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_atomic_write_replaces_content_and_leaves_no_temp_files(self):
        target = self.tmp_dir / "nested" / "file.json"
        atomic_write_text(target, "one")
        atomic_write_text(target, "two")

        self.assertEqual(target.read_text(), "two")
        self.assertEqual([p.name for p in target.parent.iterdir()], ["file.json"])

    def test_file_lock_is_reentrant_in_one_thread(self):
        lock = FileLock(self.tmp_dir / "locks" / ".lock")
        with lock.locked():
            with lock.locked():
                pass
        self.assertTrue(lock.path.exists())

    def test_file_lock_can_be_taken_again_after_release(self):
        lock = FileLock(self.tmp_dir / ".lock")
        with lock.locked():
            pass
        with lock.locked():
            pass

    def test_read_models_skips_corrupt_and_invalid_records(self):
        good = self.tmp_dir / "good.json"
        write_model(good, StoredSchedule(workflow_id="a", schedule=CronSchedule(type="cron", expression="0 * * * *")))
        (self.tmp_dir / "truncated.json").write_text('{"workflowId": "a"')
        (self.tmp_dir / "invalid.json").write_text(json.dumps({"workflowId": "a", "schedule": {"type": "hourly"}}))

        with self.assertLogs("flowrunner.persistence", level="WARNING") as captured:
            records = list(read_models(sorted(self.tmp_dir.glob("*.json")), StoredSchedule))

        self.assertEqual([path.name for path, _ in records], ["good.json"])
        self.assertEqual(records[0][1].workflow_id, "a")
        self.assertEqual(len(captured.records), 2)


class WorkflowStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="workflow-store-tests-"))
        self.store = WorkflowStore(self.tmp_dir)

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_load_returns_highest_version(self):
        self.store.save(_workflow("alpha", 2, name="second"))
        self.store.save(_workflow("alpha", 10, name="tenth"))
        self.store.save(_workflow("alpha", 9, name="ninth"))

        loaded = self.store.load("alpha")

        self.assertEqual(loaded.version, 10)
        self.assertEqual(loaded.name, "tenth")

    def test_saved_files_use_camel_case(self):
        self.store.save(_workflow("alpha"))
        payload = json.loads((self.tmp_dir / "alpha-v1.json").read_text())
        self.assertEqual(payload["schedule"], {"type": "interval", "intervalMinutes": 5})
        self.assertIn("isStart", payload["nodes"][0])

    def test_list_all_returns_latest_per_id(self):
        self.store.save(_workflow("beta", 1))
        self.store.save(_workflow("alpha", 1))
        self.store.save(_workflow("alpha", 3))

        listed = self.store.list_all()

        self.assertEqual([(w.id, w.version) for w in listed], [("alpha", 3), ("beta", 1)])

    def test_delete_removes_every_version(self):
        self.store.save(_workflow("alpha", 1))
        self.store.save(_workflow("alpha", 2))

        self.assertTrue(self.store.delete("alpha"))
        self.assertIsNone(self.store.load("alpha"))
        self.assertFalse(self.store.delete("alpha"))

    def test_ids_sharing_a_prefix_do_not_collide(self):
        self.store.save(_workflow("flow", 1))
        self.store.save(_workflow("flow-v2", 1))

        self.assertEqual(self.store.load("flow").id, "flow")
        self.assertEqual(self.store.load("flow-v2").id, "flow-v2")

    def test_list_all_skips_unreadable_workflows(self):
        self.store.save(_workflow("alpha", 1))
        (self.tmp_dir / "broken-v1.json").write_text("{not json")

        self.assertEqual([w.id for w in self.store.list_all()], ["alpha"])


class ScheduleStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="schedule-store-tests-"))
        self.store = ScheduleStore(self.tmp_dir)

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_round_trip_and_toggle(self):
        stored = StoredSchedule(workflow_id="alpha", schedule=CronSchedule(type="cron", expression="*/5 * * * *"))
        schedule_id = self.store.save(stored)

        loaded = self.store.load(schedule_id)
        self.assertEqual(loaded.schedule.expression, "*/5 * * * *")
        self.assertTrue(loaded.enabled)

        toggled = self.store.set_enabled(schedule_id, False)
        self.assertFalse(toggled.enabled)
        self.assertFalse(self.store.load(schedule_id).enabled)

    def test_list_is_ordered_by_creation(self):
        first = StoredSchedule(
            workflow_id="a",
            schedule=IntervalSchedule(type="interval", interval_minutes=1),
            created_at=datetime(2024, 1, 1, 9, 0),
        )
        second = StoredSchedule(
            workflow_id="b",
            schedule=IntervalSchedule(type="interval", interval_minutes=2),
            created_at=datetime(2024, 1, 1, 10, 0),
        )
        self.store.save(second)
        self.store.save(first)

        self.assertEqual([s.workflow_id for s in self.store.list()], ["a", "b"])

    def test_list_skips_corrupt_schedule_files(self):
        self.store.save(StoredSchedule(workflow_id="a", schedule=CronSchedule(type="cron", expression="0 * * * *")))
        (self.tmp_dir / "broken.json").write_text("{not json")

        self.assertEqual([s.workflow_id for s in self.store.list()], ["a"])

    def test_missing_schedule(self):
        self.assertIsNone(self.store.load("nope"))
        self.assertIsNone(self.store.set_enabled("nope", True))
        self.assertFalse(self.store.delete("nope"))

    def test_once_schedule_reads_datetime_key(self):
        stored = StoredSchedule.model_validate(
            {"workflowId": "a", "schedule": {"type": "once", "datetime": "2030-01-01T09:00:00"}}
        )
        self.store.save(stored)
        payload = json.loads((self.tmp_dir / f"{stored.id}.json").read_text())
        self.assertEqual(payload["schedule"]["datetime"], "2030-01-01T09:00:00")


class ExecutionLoggerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp_dir = Path(tempfile.mkdtemp(prefix="execution-log-tests-"))
        self.logger = ExecutionLogger(self.tmp_dir / "logs")

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _entry(self, workflow_id: str, **fields) -> ExecutionLogEntry:
        return ExecutionLogEntry(
            automation_id=workflow_id,
            automation_name=workflow_id.title(),
            success=True,
            duration_ms=12.5,
            **fields,
        )

    def test_newest_entries_first_with_limit(self):
        with patch("flowrunner.scheduling.logs.time") as clock:
            clock.time_ns.side_effect = [1_000_000_000, 2_000_000_000, 3_000_000_000]
            self.logger.write(self._entry("alpha", steps_executed=1))
            self.logger.write(self._entry("alpha", steps_executed=2))
            self.logger.write(self._entry("alpha", steps_executed=3))

        entries = self.logger.list("alpha", limit=2)

        self.assertEqual([e.steps_executed for e in entries], [3, 2])

    def test_same_millisecond_writes_do_not_overwrite(self):
        with patch("flowrunner.scheduling.logs.time") as clock:
            clock.time_ns.return_value = 5_000_000_000
            first = self.logger.write(self._entry("alpha"))
            second = self.logger.write(self._entry("alpha"))

        self.assertNotEqual(first, second)
        self.assertEqual(len(self.logger.list("alpha")), 2)

    def test_entries_are_filtered_by_exact_workflow_id(self):
        self.logger.write(self._entry("alpha"))
        self.logger.write(self._entry("alpha_beta"))

        self.assertEqual([e.automation_id for e in self.logger.list("alpha")], ["alpha"])
        self.assertEqual([e.automation_id for e in self.logger.list("alpha_beta")], ["alpha_beta"])

    def test_workflow_ids_with_glob_characters(self):
        self.logger.write(self._entry("report[1]"))
        self.logger.write(self._entry("report1"))
        self.logger.write(self._entry("any*"))

        self.assertEqual([e.automation_id for e in self.logger.list("report[1]")], ["report[1]"])
        self.assertEqual([e.automation_id for e in self.logger.list("any*")], ["any*"])
        self.assertEqual(self.logger.clear("report[1]"), 1)
        self.assertEqual(len(self.logger.list("report1")), 1)

    def test_file_format_is_camel_case(self):
        path = self.logger.write(self._entry("alpha", error="boom", variables={"x": 1}))
        payload = json.loads(path.read_text())
        self.assertEqual(payload["automationId"], "alpha")
        self.assertEqual(payload["durationMs"], 12.5)
        self.assertEqual(payload["error"], "boom")
        self.assertEqual(payload["variables"], {"x": 1})

    def test_unreadable_files_are_skipped(self):
        self.logger.write(self._entry("alpha"))
        (self.logger.log_dir / "alpha_99.json").write_text("{not json")

        self.assertEqual(len(self.logger.list("alpha")), 1)

    def test_clear(self):
        self.logger.write(self._entry("alpha"))
        self.logger.write(self._entry("gamma"))

        self.assertEqual(self.logger.clear("alpha"), 1)
        self.assertEqual(self.logger.list("alpha"), [])
        self.assertEqual(len(self.logger.list("gamma")), 1)


class DebugLogTests(unittest.TestCase):
    def test_ring_buffer_and_statistics(self):
        log = DebugLog(capacity=3)
        log.debug("Test", "one")
        log.info("Test", "two")
        log.warn("Test", "three")
        log.error("Test", "four", {"detail": 1})

        self.assertEqual([e.message for e in log.get_logs()], ["two", "three", "four"])
        self.assertEqual(log.statistics(), {"debug": 0, "info": 1, "warn": 1, "error": 1, "total": 3})
        self.assertEqual(len(log.get_logs("error")), 1)

    def test_log_operation_and_export(self):
        log = DebugLog()
        log.log_operation("Step Execution", "click step completed", 12.5)

        exported = json.loads(log.export())

        self.assertEqual(exported[0]["duration_ms"], 12.5)
        self.assertIn("12.50ms", exported[0]["message"])
        log.clear()
        self.assertEqual(log.statistics()["total"], 0)


if __name__ == "__main__":
    unittest.main()
