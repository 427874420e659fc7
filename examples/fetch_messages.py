import asyncio
import logging
import os

from dotenv import load_dotenv

from batchstream import BatchPipeline, CallDescriptor, DecodeErrorResult, Settings
from batchstream.logging import setup_logging

load_dotenv()


class EnvAuthClient:
    async def get_access_token(self) -> str | None:
        return os.getenv("BATCHSTREAM_ACCESS_TOKEN")


async def main():
    setup_logging(level=logging.INFO)
    pipeline = await BatchPipeline.from_auth_client(
        EnvAuthClient(), settings=Settings(user_quota=250, user_quota_time_ms=1000)
    )
    message_ids = os.getenv("MESSAGE_IDS", "").split(",")
    calls = (
        CallDescriptor(
            method="GET",
            url=f"/gmail/v1/users/me/messages/{message_id}",
            query_params={"format": "metadata"},
        )
        for message_id in message_ids
        if message_id
    )
    async for result in pipeline.pipeline(batch_size=50, quota_cost_per_item=5)(calls):
        if isinstance(result, DecodeErrorResult):
            print(f"undecodable response: {result.error}")
        else:
            print(result.get("id"), result.get("snippet"))


if __name__ == "__main__":
    asyncio.run(main())
