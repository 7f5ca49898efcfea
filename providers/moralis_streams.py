from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from chains.registry import ChainFamily
from core.errors import StreamProviderError

logger = logging.getLogger(__name__)


class MoralisStreamsClient:
    """
    Moralis Streams API:
      - POST   {BASE}/{evm|solana}            create stream -> {"id": ...}
      - GET    {BASE}/{evm|solana}/{id}
      - PATCH  {BASE}/{evm|solana}/{id}
      - DELETE {BASE}/{evm|solana}/{id}
    EVM and Solana streams live under separate sub-APIs; every call is
    routed by ChainFamily.
    """
    BASE = "https://api.moralis-streams.com/streams"

    def __init__(self, api_key: str, timeout: float = 30.0, base_url: str = BASE):
        self.base = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "X-API-Key": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        # POST is left out: a retried create could leave a duplicate stream behind
        retries = Retry(
            total=3,
            connect=3,
            read=3,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "PATCH", "DELETE"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _url(self, family: ChainFamily, stream_id: str = "") -> str:
        url = f"{self.base}/{family.value}"
        return f"{url}/{stream_id}" if stream_id else url

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StreamProviderError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _json(r: requests.Response) -> Any:
        if r.status_code >= 400:
            raise StreamProviderError(f"HTTP {r.status_code}: {r.text[:300]}", status_code=r.status_code)
        try:
            return r.json() if r.content else {}
        except ValueError as e:
            raise StreamProviderError(f"non-JSON response: {r.text[:300]}", status_code=r.status_code) from e

    @staticmethod
    def build_stream_config(
        family: ChainFamily,
        address: str,
        provider_chain: str,
        webhook_url: str,
        description: str = "",
        tag: str = "",
    ) -> Dict[str, Any]:
        cfg: Dict[str, Any] = {
            "webhookUrl": webhook_url,
            "description": description or f"Track {address[:8]}...",
            "tag": tag or address[:8],
            "includeNativeTxs": True,
            "includeContractLogs": True,
            "includeInternalTxs": True,
        }
        if family is ChainFamily.SINGLE_LEDGER:
            cfg["network"] = "mainnet"
            cfg["address"] = [address]
        else:
            cfg["chains"] = [provider_chain]
            cfg["address"] = address
            cfg["allAddresses"] = False
            cfg["includeAllTxLogs"] = True
            cfg["getNativeBalances"] = [{"selectors": ["$fromAddress", "$toAddress"], "type": "tx"}]
        return cfg

    def create_stream(
        self,
        family: ChainFamily,
        address: str,
        provider_chain: str,
        webhook_url: str,
        description: str = "",
        tag: str = "",
    ) -> Dict[str, Any]:
        cfg = self.build_stream_config(family, address, provider_chain, webhook_url, description, tag)
        data = self._json(self._request("POST", self._url(family), json=cfg))
        if not isinstance(data, dict) or not data.get("id"):
            raise StreamProviderError(f"create stream returned no id: {data!r}")
        logger.info("Created stream %s for %s", data["id"], address)
        return data

    def get_stream(self, stream_id: str, family: ChainFamily) -> Optional[Dict[str, Any]]:
        r = self._request("GET", self._url(family, stream_id))
        if r.status_code == 404:
            return None
        return self._json(r)

    def update_stream(
        self,
        stream_id: str,
        family: ChainFamily,
        address: str,
        provider_chain: str,
        webhook_url: str,
    ) -> Dict[str, Any]:
        cfg: Dict[str, Any] = {
            "webhookUrl": webhook_url,
            "includeNativeTxs": True,
            "includeContractLogs": True,
        }
        if family is ChainFamily.SINGLE_LEDGER:
            cfg["address"] = [address]
        else:
            cfg["chains"] = [provider_chain]
        data = self._json(self._request("PATCH", self._url(family, stream_id), json=cfg))
        logger.info("Updated stream %s", stream_id)
        return data

    def delete_stream(self, stream_id: str, family: ChainFamily) -> bool:
        """True when the stream is gone afterwards (404 included)."""
        r = self._request("DELETE", self._url(family, stream_id))
        if r.status_code == 404:
            logger.info("Stream %s already absent", stream_id)
            return True
        self._json(r)
        logger.info("Deleted stream %s", stream_id)
        return True

    def list_streams(self, family: ChainFamily, limit: int = 100) -> List[Dict[str, Any]]:
        data = self._json(self._request("GET", self._url(family), params={"limit": limit}))
        return list((data or {}).get("result") or [])
