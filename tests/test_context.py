import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from apscheduler.schedulers.background import BackgroundScheduler

from jira_pulse.config import AppConfig
from jira_pulse.context import NOT_CONFIGURED, NOT_INITIALIZED, AppContext
from jira_pulse.credentials import JIRA_API_TOKEN, EnvCredentialStore, MemoryCredentialStore
from jira_pulse.models import ConnectionCheck

CONNECTED_SETTINGS = {
    "jira": {"base_url": "https://example.atlassian.net", "email": "dev@example.com"},
    "collection": {"projects": ["PROJ"]},
    "schedule": {"enabled": True, "times": ["09:00", "18:00"]},
    "teams": [
        {"id": "core", "name": "Core", "notification": {"enabled": True, "times": ["08:30"]}},
    ],
}


class AppContextTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.config = AppConfig(data_dir=Path(self._tmp.name), retry_base_delay_seconds=0)
        self.credentials = MemoryCredentialStore()
        self.background = BackgroundScheduler()
        self.context = AppContext.create(self.config, self.credentials, background=self.background)

    def tearDown(self):
        self.context.shutdown()
        self._tmp.cleanup()

    def job_ids(self) -> set[str]:
        return {job.id for job in self.background.get_jobs()}

    def test_unconfigured_context(self):
        self.assertIsNone(self.context.client)
        self.assertEqual(self.job_ids(), set())

        result = self.context.trigger_manual_sync()

        self.assertFalse(result.success)
        self.assertEqual(result.error, NOT_INITIALIZED)
        self.assertFalse(self.context.get_status().is_running)

    def test_data_directories_are_created(self):
        self.assertTrue(self.context.storage.raw_dir.is_dir())
        self.assertTrue(self.context.storage.reports_dir.is_dir())

    def test_settings_and_token_wire_client_and_triggers(self):
        self.context.save_settings(CONNECTED_SETTINGS)
        self.assertIsNone(self.context.client)
        self.assertEqual(self.job_ids(), {"team_core_08:30"})

        self.context.save_token("secret")

        self.assertIsNotNone(self.context.client)
        self.assertEqual(self.context.client.base_url, "https://example.atlassian.net")
        self.assertEqual(self.job_ids(), {"sync_09:00", "sync_18:00", "team_core_08:30"})

    def test_engine_survives_rebuilds(self):
        self.credentials.save(JIRA_API_TOKEN, "secret")
        self.context.save_settings(CONNECTED_SETTINGS)
        engine = self.context.sync_engine

        updated = dict(CONNECTED_SETTINGS, schedule={"enabled": True, "times": ["12:00"]})
        self.context.save_settings(updated)

        self.assertIs(self.context.sync_engine, engine)
        self.assertIs(engine.client, self.context.client)
        self.assertEqual(engine.settings.schedule.times, ["12:00"])
        self.assertEqual(self.job_ids(), {"sync_12:00", "team_core_08:30"})

    def test_deleting_token_disarms_sync_triggers(self):
        self.credentials.save(JIRA_API_TOKEN, "secret")
        self.context.save_settings(CONNECTED_SETTINGS)

        self.context.delete_token()

        self.assertIsNone(self.context.client)
        self.assertEqual(self.job_ids(), {"team_core_08:30"})
        self.assertEqual(self.context.trigger_manual_sync().error, NOT_INITIALIZED)

    def test_manual_sync_runs_on_engine(self):
        self.credentials.save(JIRA_API_TOKEN, "secret")
        self.context.save_settings(CONNECTED_SETTINGS)
        self.context.client.fetch_all = Mock(return_value=[])

        result = self.context.trigger_manual_sync()

        self.assertTrue(result.success)
        self.assertEqual(self.context.get_status().last_result.issue_count, 0)

    def test_connection_probe_without_configuration(self):
        check = self.context.test_connection()

        self.assertFalse(check.success)
        self.assertEqual(check.error, NOT_CONFIGURED)

    def test_connection_probe_with_candidate_values(self):
        with patch("jira_pulse.context.JiraClient") as client_cls:
            client_cls.return_value.test_connection.return_value = ConnectionCheck(success=True, display_name="Dev")

            check = self.context.test_connection("https://other.atlassian.net", "me@example.com", "candidate")

        self.assertTrue(check.success)
        kwargs = client_cls.call_args.kwargs
        self.assertEqual(kwargs["base_url"], "https://other.atlassian.net")
        self.assertEqual(kwargs["api_token"], "candidate")
        self.assertIsNone(self.context.client)

    def test_default_team_routine_tolerates_missing_data(self):
        self.context.save_settings(CONNECTED_SETTINGS)

        self.context.team_routine(self.context.settings.teams[0])


class EnvCredentialStoreTests(unittest.TestCase):
    def test_environment_value_with_overrides(self):
        with patch("jira_pulse.credentials.config", return_value="env-token") as env:
            store = EnvCredentialStore()

            self.assertEqual(store.get(JIRA_API_TOKEN), "env-token")
            env.assert_called_with("JIRA_API_TOKEN", default=None)

            store.save(JIRA_API_TOKEN, "saved")
            self.assertEqual(store.get(JIRA_API_TOKEN), "saved")

            store.delete(JIRA_API_TOKEN)
            self.assertIsNone(store.get(JIRA_API_TOKEN))

    def test_missing_environment_value(self):
        with patch("jira_pulse.credentials.config", return_value=None):
            self.assertIsNone(EnvCredentialStore().get(JIRA_API_TOKEN))


class MemoryCredentialStoreTests(unittest.TestCase):
    def test_save_get_delete(self):
        store = MemoryCredentialStore()

        store.save("purpose", "value")
        self.assertEqual(store.get("purpose"), "value")

        store.delete("purpose")
        store.delete("purpose")
        self.assertIsNone(store.get("purpose"))


if __name__ == "__main__":
    unittest.main()
