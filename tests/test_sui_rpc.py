"""
Tests for the Sui JSON-RPC read adapter and payload schemas
"""

import json

import httpx
import pytest

from suistream_pipeline.adapters.sui_rpc import SuiRpcReader
from suistream_pipeline.types import AddressComputationError, ChainRpcError, FieldDecodeError
from suistream_pipeline.utils import blob_id_from_u256

BLOB_TYPE = "0xa11::blob::Blob"
BLOB_ID_U256 = "48783477845946152426049815226359014446203298364318766283356787493063924123456"


def rpc_handler(results, calls=None):
    """Answer JSON-RPC calls from a {method: result-or-callable} map"""
    def handler(request: httpx.Request):
        payload = json.loads(request.content)
        if calls is not None:
            calls.append(payload)
        answer = results[payload["method"]]
        if callable(answer):
            answer = answer(payload["params"])
        if isinstance(answer, dict) and "error" in answer:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], **answer})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": answer})
    return handler


def reader_for(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SuiRpcReader("https://rpc.test", client=client, **kwargs)


def make_reader(results, calls=None, **kwargs):
    return reader_for(rpc_handler(results, calls), **kwargs)


def unavailable(request: httpx.Request):
    return httpx.Response(503, text="upstream connect error")


def system_state(n_shards=1000, storage_price=100, write_price=20):
    return {
        "data": {
            "objectId": "0x55",
            "content": {
                "dataType": "moveObject",
                "type": "0x2::dynamic_field::Field<u64, 0xa11::system_state_inner::SystemStateInnerV1>",
                "fields": {
                    "id": {"id": "0x55"},
                    "name": "1",
                    "value": {
                        "type": "0xa11::system_state_inner::SystemStateInnerV1",
                        "fields": {
                            "committee": {"type": "0xa11::committee::Committee",
                                          "fields": {"n_shards": n_shards, "epoch": 7}},
                            "storage_price_per_unit_size": str(storage_price),
                            "write_price_per_unit_size": str(write_price),
                        },
                    },
                },
            },
        }
    }


class TestSuiRpcReader:
    """Test suite for SuiRpcReader"""

    @pytest.mark.asyncio
    async def test_transaction_block(self):
        calls = []
        block = {
            "digest": "abc",
            "effects": {"status": {"status": "success"}},
            "objectChanges": [
                {"type": "created", "objectId": "0x1", "objectType": BLOB_TYPE},
                {"type": "mutated", "objectId": "0x2", "objectType": "0x2::coin::Coin<0x2::sui::SUI>"},
                {"type": "created", "objectId": "0x3", "objectType": BLOB_TYPE},
                {"type": "published", "packageId": "0x9"},
            ],
        }
        reader = make_reader({"sui_getTransactionBlock": block}, calls)

        result = await reader.get_transaction_block("abc")

        assert calls[0]["params"] == ["abc", {"showEffects": True, "showObjectChanges": True}]
        assert result.succeeded
        assert result.created_of_type(BLOB_TYPE) == ["0x1", "0x3"]

    @pytest.mark.asyncio
    async def test_failed_transaction_effects(self):
        block = {"digest": "abc", "effects": {"status": {"status": "failure", "error": "MoveAbort"}}}
        result = await make_reader({"sui_getTransactionBlock": block}).get_transaction_block("abc")
        assert not result.succeeded
        assert result.error == "MoveAbort"

    @pytest.mark.asyncio
    async def test_unknown_transaction_is_not_visible(self):
        error = {"error": {"code": -32602, "message": "Could not find the referenced transaction"}}
        reader = make_reader({"sui_getTransactionBlock": error})
        assert await reader.get_transaction_block("abc") is None

    @pytest.mark.asyncio
    async def test_blob_object_decodes_numeric_blob_id(self):
        obj = {"data": {
            "objectId": "0xb1",
            "content": {
                "dataType": "moveObject",
                "type": BLOB_TYPE,
                "fields": {
                    "blob_id": BLOB_ID_U256,
                    "size": "2048",
                    "encoding_type": 1,
                    "deletable": False,
                    "certified_epoch": None,
                    "registered_epoch": 7,
                },
            },
        }}
        blob = await make_reader({"sui_getObject": obj}).get_blob_object("0xb1")

        assert blob.object_id == "0xb1"
        assert blob.content_id == blob_id_from_u256(int(BLOB_ID_U256))
        assert blob.size == 2048
        assert blob.certified_epoch is None

    @pytest.mark.asyncio
    async def test_blob_object_missing_field_fails_closed(self):
        obj = {"data": {"objectId": "0xb1", "content": {"type": BLOB_TYPE, "fields": {"size": "1"}}}}
        with pytest.raises(FieldDecodeError) as excinfo:
            await make_reader({"sui_getObject": obj}).get_blob_object("0xb1")
        assert "blob_object[0xb1]" in excinfo.value.path

    @pytest.mark.asyncio
    async def test_network_state_from_system_object(self):
        calls = []
        reader = make_reader({"sui_getObject": system_state()}, calls, system_state_object_id="0x55")

        state = await reader.get_network_state()

        assert calls[0]["params"] == ["0x55", {"showContent": True}]
        assert state.shard_count == 1000
        assert state.storage_price_per_unit == 100
        assert state.write_price_per_unit == 20

    @pytest.mark.asyncio
    async def test_configured_shard_count_wins(self):
        reader = make_reader({"sui_getObject": system_state()}, system_state_object_id="0x55", shard_count=10)
        state = await reader.get_network_state()
        assert state.shard_count == 10
        assert state.storage_price_per_unit == 100

    @pytest.mark.asyncio
    async def test_configured_shard_count_without_chain(self):
        calls = []
        state = await make_reader({}, calls, shard_count=12).get_network_state()
        assert state.shard_count == 12
        assert calls == []

    @pytest.mark.asyncio
    async def test_no_shard_count_source(self):
        with pytest.raises(AddressComputationError):
            await make_reader({}).get_network_state()

    @pytest.mark.asyncio
    async def test_zero_shards_fails_closed(self):
        reader = make_reader({"sui_getObject": system_state(n_shards=0)}, system_state_object_id="0x55")
        with pytest.raises(FieldDecodeError):
            await reader.get_network_state()

    def test_from_settings(self, settings):
        settings.walrus_system_state_object_id = "0x55"
        reader = SuiRpcReader.from_settings(settings)
        assert reader.base_url == settings.sui_rpc_url.rstrip("/")
        assert reader.system_state_object_id == "0x55"
        assert reader.shard_count == 10

    @pytest.mark.asyncio
    async def test_server_error_is_typed(self):
        with pytest.raises(ChainRpcError) as excinfo:
            await reader_for(unavailable).get_blob_object("0xb1")
        assert excinfo.value.method == "sui_getObject"
        assert excinfo.value.code is None
        assert "503" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_connect_error_is_typed(self):
        def refuse(request: httpx.Request):
            raise httpx.ConnectError("connection refused", request=request)

        reader = reader_for(refuse, system_state_object_id="0x55")
        with pytest.raises(ChainRpcError):
            await reader.get_network_state()

    @pytest.mark.asyncio
    async def test_non_json_body_is_typed(self):
        def html(request: httpx.Request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(ChainRpcError) as excinfo:
            await reader_for(html).get_blob_object("0xb1")
        assert "not JSON" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_server_error_while_polling_is_not_visible(self):
        assert await reader_for(unavailable).get_transaction_block("abc") is None
