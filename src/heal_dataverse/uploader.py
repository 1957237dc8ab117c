# Copyright 2025 Gowtham Rao <rao@ohdsi.org>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Provides a thin client for creating datasets through the Dataverse native API."""

import logging
from typing import Any

import httpx

from .schema import USER_AGENT

logger = logging.getLogger(__name__)


class DataverseUploader:
    """Posts converted dataset documents to a Dataverse installation."""

    CREATE_DATASET_PATH = "/api/dataverses/{collection}/datasets"

    def __init__(
        self,
        base_url: str,
        api_token: str | None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            timeout=timeout,
        )

    def dataset_url(self, collection: str) -> str:
        return self.base_url + self.CREATE_DATASET_PATH.format(collection=collection)

    async def create_dataset(
        self, collection: str, document: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a draft dataset in `collection` and return Dataverse's reply.

        The reply is returned as-is; only the HTTP status is checked.
        """
        headers = {}
        if self.api_token:
            headers["X-Dataverse-key"] = self.api_token
        url = self.dataset_url(collection)
        try:
            response = await self.client.post(url, json=document, headers=headers)
            response.raise_for_status()
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.error("Failed to create dataset in '%s': %s", collection, e)
            raise
        logger.info("Created dataset in Dataverse collection '%s'.", collection)
        return response.json()

    async def aclose(self) -> None:
        await self.client.aclose()
