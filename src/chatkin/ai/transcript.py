"""Build the model transcript for one chat turn."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Protocol

from loguru import logger

from chatkin.ai.types import ContentBlock, FileAttachment, ImageBlock, Role, StoredMessage, TextBlock, TranscriptTurn
from chatkin.errors import ImageFetchError
from chatkin.store.images import ImageData

ASSISTANT_ROLES = frozenset({"ai", "assistant"})
SUMMARY_TEMPLATE = "[Previous conversation summary: {summary}]"


class ImageFetcher(Protocol):
    async def fetch(self, url: str) -> ImageData: ...


def to_model_role(stored_role: str) -> Role:
    return "assistant" if stored_role in ASSISTANT_ROLES else "user"


class TranscriptBuilder:
    """Assembles summary, history and the current user input into turns."""

    def __init__(self, images: ImageFetcher) -> None:
        self._images = images

    async def build(
        self,
        current_text: str,
        current_attachments: Sequence[FileAttachment] = (),
        history: Sequence[StoredMessage] = (),
        summary: str | None = None,
    ) -> list[TranscriptTurn]:
        turns: list[TranscriptTurn] = []
        if summary:
            turns.append(TranscriptTurn(role="user", content=SUMMARY_TEMPLATE.format(summary=summary)))

        for index, message in enumerate(history):
            # The first assistant entry is the canned greeting.
            if index == 0 and message.role in ASSISTANT_ROLES:
                continue
            turns.append(await self._turn(to_model_role(message.role), message.content, message.files))

        turns.append(await self._turn("user", current_text, current_attachments))
        logger.debug(
            "transcript.built turns={} history={} summary={}",
            len(turns),
            len(history),
            bool(summary),
        )
        return turns

    async def _turn(self, role: Role, text: str, attachments: Sequence[FileAttachment]) -> TranscriptTurn:
        images = await self._image_blocks(attachments)
        if not images:
            return TranscriptTurn(role=role, content=text)
        blocks: tuple[ContentBlock, ...] = (TextBlock(text=text), *images)
        return TranscriptTurn(role=role, content=blocks)

    async def _image_blocks(self, attachments: Sequence[FileAttachment]) -> list[ImageBlock]:
        image_files = [attachment for attachment in attachments if attachment.is_image]
        if not image_files:
            return []
        results = await asyncio.gather(
            *(self._images.fetch(attachment.url) for attachment in image_files),
            return_exceptions=True,
        )
        blocks: list[ImageBlock] = []
        for attachment, result in zip(image_files, results, strict=True):
            if isinstance(result, ImageFetchError):
                logger.warning("transcript.image.skipped name={} error={}", attachment.name, result)
                continue
            if isinstance(result, BaseException):
                raise result
            blocks.append(ImageBlock(media_type=result.media_type, data=result.data))
        return blocks
