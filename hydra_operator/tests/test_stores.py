import unittest
from unittest import mock

from hydra_operator.errors import SecretConflict
from hydra_operator.status import EasykubeStatusReporter
from hydra_operator.stores import EasykubeResourceStore, EasykubeSecretStore
from hydra_operator.models import v1alpha1 as api

from .fakes import FINALIZER, make_resource


class FakeApiError(Exception):
    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


@mock.patch("hydra_operator.stores.ApiError", FakeApiError)
class TestEasykubeResourceStore(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.ekresource = mock.AsyncMock()
        self.store = EasykubeResourceStore(self.ekresource)

    async def test_fetch(self):
        self.ekresource.fetch.return_value = make_resource()
        self.assertEqual(await self.store.fetch("myclient", "default"), make_resource())
        self.ekresource.fetch.assert_awaited_once_with("myclient", namespace = "default")

    async def test_fetch_not_found(self):
        self.ekresource.fetch.side_effect = FakeApiError(404)
        self.assertIsNone(await self.store.fetch("myclient", "default"))

    async def test_fetch_error(self):
        self.ekresource.fetch.side_effect = FakeApiError(500)
        with self.assertRaises(FakeApiError):
            await self.store.fetch("myclient", "default")

    async def test_add_finalizer(self):
        await self.store.add_finalizer(make_resource(finalizers = ["other"]), FINALIZER)
        self.ekresource.patch.assert_awaited_once_with(
            "myclient",
            {"metadata": {"finalizers": ["other", FINALIZER], "resourceVersion": "1"}},
            namespace = "default"
        )

    async def test_add_finalizer_already_present(self):
        await self.store.add_finalizer(make_resource(finalizers = [FINALIZER]), FINALIZER)
        self.ekresource.patch.assert_not_awaited()

    async def test_remove_finalizer(self):
        await self.store.remove_finalizer(
            make_resource(finalizers = ["other", FINALIZER]),
            FINALIZER
        )
        self.ekresource.patch.assert_awaited_once_with(
            "myclient",
            {"metadata": {"finalizers": ["other"], "resourceVersion": "1"}},
            namespace = "default"
        )


@mock.patch("hydra_operator.stores.ApiError", FakeApiError)
class TestEasykubeSecretStore(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.ekresource = mock.AsyncMock()
        self.store = EasykubeSecretStore(self.ekresource)

    async def test_create(self):
        await self.store.create("myclient-secret", "default", {"client_id": "aWQ="}, make_resource())
        [body], kwargs = self.ekresource.create.await_args
        self.assertEqual(kwargs, {"namespace": "default"})
        self.assertEqual(body["data"], {"client_id": "aWQ="})
        self.assertEqual(body["metadata"]["labels"], {"owner": "myclient"})
        self.assertEqual(
            body["metadata"]["ownerReferences"],
            [
                {
                    "apiVersion": "hydra.ory.sh/v1alpha1",
                    "kind": "OAuth2Client",
                    "name": "myclient",
                    "uid": "uid-myclient",
                    "blockOwnerDeletion": True,
                },
            ]
        )

    async def test_create_conflict(self):
        self.ekresource.create.side_effect = FakeApiError(409)
        with self.assertRaises(SecretConflict):
            await self.store.create("myclient-secret", "default", {}, make_resource())

    async def test_adopt(self):
        secret = {"metadata": {"name": "myclient-secret", "namespace": "default"}}
        await self.store.adopt(secret, make_resource())
        self.ekresource.patch.assert_awaited_once_with(
            "myclient-secret",
            {"metadata": {"labels": {"owner": "myclient"}}},
            namespace = "default"
        )

    async def test_adopt_already_labelled(self):
        secret = {
            "metadata": {
                "name": "myclient-secret",
                "namespace": "default",
                "labels": {"owner": "myclient"},
            },
        }
        await self.store.adopt(secret, make_resource())
        self.ekresource.patch.assert_not_awaited()


class TestEasykubeStatusReporter(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.ekstatus = mock.AsyncMock()
        self.reporter = EasykubeStatusReporter(self.ekstatus)

    async def test_record_error(self):
        await self.reporter.record_error(
            make_resource(generation = 3),
            api.StatusCode.INVALID_SECRET,
            "secret is invalid"
        )
        self.ekstatus.patch.assert_awaited_once_with(
            "myclient",
            {
                "status": {
                    "observedGeneration": 3,
                    "reconciliationError": {
                        "statusCode": "INVALID_SECRET",
                        "description": "secret is invalid",
                    },
                },
            },
            namespace = "default"
        )

    async def test_clear_error(self):
        await self.reporter.clear_error(make_resource(generation = 2))
        self.ekstatus.patch.assert_awaited_once_with(
            "myclient",
            {"status": {"observedGeneration": 2, "reconciliationError": None}},
            namespace = "default"
        )

    async def test_failure_is_raised(self):
        self.ekstatus.patch.side_effect = RuntimeError("conflict")
        with self.assertRaises(RuntimeError):
            await self.reporter.clear_error(make_resource())
