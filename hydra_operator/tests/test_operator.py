import unittest
from unittest import mock

import kopf

from hydra_operator import operator
from hydra_operator.hydra.router import EndpointDescriptor
from hydra_operator.reconciler import ReconcileResult


class TestOperator(unittest.IsolatedAsyncioTestCase):
    @mock.patch("hydra_operator.operator.settings")
    @mock.patch("hydra_operator.operator.ekclient")
    async def test_ekresource_for_model(self, mock_ekclient, mock_settings):
        mock_model = mock.MagicMock()
        mock_model._meta.version = "vFake"
        mock_model._meta.plural_name = "fakeplural"

        mock_settings.api_group = "fake.group"

        mock_api = mock.AsyncMock()
        mock_ekclient.api = mock.AsyncMock(return_value = mock_api)
        mock_resource = mock.AsyncMock()
        mock_api.resource.return_value = mock_resource

        result = await operator.ekresource_for_model(mock_model)

        mock_ekclient.api.assert_awaited_once_with("fake.group/vFake")
        mock_api.resource.assert_awaited_once_with("fakeplural")
        self.assertEqual(result, mock_resource)

    @mock.patch("hydra_operator.operator.settings")
    @mock.patch("hydra_operator.operator.ekclient")
    async def test_ekresource_for_model_with_subresource(self, mock_ekclient, mock_settings):
        mock_model = mock.MagicMock()
        mock_model._meta.version = "vOther"
        mock_model._meta.plural_name = "otherplural"

        mock_settings.api_group = "another.group"

        mock_api = mock.AsyncMock()
        mock_ekclient.api = mock.AsyncMock(return_value = mock_api)
        mock_resource = mock.AsyncMock()
        mock_api.resource.return_value = mock_resource

        result = await operator.ekresource_for_model(mock_model, subresource = "status")

        mock_ekclient.api.assert_awaited_once_with("another.group/vOther")
        mock_api.resource.assert_awaited_once_with("otherplural/status")
        self.assertEqual(result, mock_resource)

    @mock.patch("hydra_operator.operator.reconciler")
    async def test_reconcile_requeue_raises_temporary_error(self, mock_reconciler):
        mock_reconciler.reconcile = mock.AsyncMock(
            return_value = ReconcileResult(requeue = True)
        )

        with self.assertRaises(kopf.TemporaryError):
            await operator.reconcile("myclient", "default")

        mock_reconciler.reconcile.assert_awaited_once_with("myclient", "default")

    @mock.patch("hydra_operator.operator.reconciler")
    async def test_reconcile_without_requeue(self, mock_reconciler):
        mock_reconciler.reconcile = mock.AsyncMock(return_value = ReconcileResult())

        await operator.reconcile("myclient", "default")

        mock_reconciler.reconcile.assert_awaited_once_with("myclient", "default")

    @mock.patch("hydra_operator.operator.reconcile", new_callable = mock.AsyncMock)
    async def test_event_handler_only_reconciles_deleted_objects(self, mock_reconcile):
        await operator.handle_oauth2_client_event(
            name = "myclient",
            namespace = "default",
            type = "MODIFIED"
        )
        mock_reconcile.assert_not_awaited()

        await operator.handle_oauth2_client_event(
            name = "myclient",
            namespace = "default",
            type = "DELETED"
        )
        mock_reconcile.assert_awaited_once_with("myclient", "default")

    @mock.patch("hydra_operator.operator.settings")
    def test_build_router_with_default(self, mock_settings):
        mock_settings.request_timeout = 5.0
        mock_settings.hydra_url = "http://hydra-admin.hydra"
        mock_settings.hydra_port = 4445
        mock_settings.hydra_endpoint = "/clients"
        mock_settings.hydra_forwarded_proto = None

        factory = mock.MagicMock()
        with mock.patch("hydra_operator.operator.hydra_client_factory", return_value = factory):
            router = operator.build_router()

        factory.assert_called_once_with(
            EndpointDescriptor("http://hydra-admin.hydra", 4445, "/clients", None)
        )
        self.assertIsNotNone(router._default)

    @mock.patch("hydra_operator.operator.settings")
    def test_build_router_without_default(self, mock_settings):
        mock_settings.request_timeout = 5.0
        mock_settings.hydra_url = None

        router = operator.build_router()

        self.assertIsNone(router._default)
