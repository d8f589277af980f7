import itertools
import json
import logging
from typing import Any

from aiohttp import ClientSession, ClientTimeout

REQUEST_TIMEOUT_SECONDS = 30

_request_ids = itertools.count(1)


async def send_rpc_request(
    url: str,
    method: str,
    params=None,
) -> Any:
    json_request = {
        "jsonrpc": "2.0",
        "id": next(_request_ids),
        "method": method,
        "params": params,
    }
    headers = {
        "content-type": "application/json",
    }
    # urls can carry api keys, only the method is logged
    logging.debug(f"rpc request {method}: {json.dumps(params)}")
    async with ClientSession(
        timeout=ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)
    ) as session:
        async with session.post(
            url,
            json=json_request,
            headers=headers
        ) as response:
            resp = await response.read()
    try:
        json_result = json.loads(resp)
    except json.decoder.JSONDecodeError:
        logging.error(f"Invalid json response for rpc request {method}")
        raise ValueError(f"Invalid json response for rpc request {method}")
    logging.debug(f"rpc response {method}: {json_result}")
    return json_result


def normalize_rpc_error(error: Any) -> str:
    """
    Collapse the different JSON-RPC error shapes returned by bundlers
    and nodes into a single message.
    """
    if isinstance(error, str):
        return error
    if not isinstance(error, dict):
        return json.dumps(error)
    if error.get("message"):
        return error["message"]
    data = error.get("data")
    if isinstance(data, dict) and data.get("message"):
        return data["message"]
    if data:
        if isinstance(data, str):
            return data
        return json.dumps(data)
    return json.dumps(error)
