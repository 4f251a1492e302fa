"""Extraction of file artifacts from fenced code blocks in generated text.

A fenced block opens with a triple backtick. The rest of that line is the
header, ``<language> <optional path>``. The body runs to the next triple
backtick or to the end of the buffer, so a response cut off mid-file still
yields the partial file.

:class:`FenceTokenizer` is an explicit state machine
(``SEEKING_FENCE -> READING_HEADER -> READING_BODY``) that can be fed text in
arbitrary pieces; feeding a buffer in any chunking produces the same blocks as
feeding it whole. :func:`extract_files` runs one tokenizer over a complete
buffer and resolves the blocks into :class:`GeneratedFile` records. It is pure:
the same buffer always yields the same list.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from schemas.generation import GeneratedFile


logger = logging.getLogger(__name__)

FENCE = "```"
DEFAULT_LANGUAGE = "txt"
DEFAULT_EXTENSION = "txt"

LANGUAGE_EXTENSIONS: dict[str, str] = {
    "typescript": "ts",
    "javascript": "js",
    "tsx": "tsx",
    "jsx": "jsx",
    "python": "py",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "css": "css",
    "html": "html",
    "json": "json",
    "yaml": "yaml",
    "yml": "yml",
    "sql": "sql",
    "go": "go",
    "rust": "rs",
    "ruby": "rb",
    "php": "php",
    "swift": "swift",
    "kotlin": "kt",
}


def extension_for(language: str) -> str:
    """File extension for a fence language token, ``txt`` when unknown."""
    return LANGUAGE_EXTENSIONS.get(language.lower(), DEFAULT_EXTENSION)


class TokenizerState(enum.Enum):
    SEEKING_FENCE = "seeking_fence"
    READING_HEADER = "reading_header"
    READING_BODY = "reading_body"


@dataclass(frozen=True, slots=True)
class FencedBlock:
    """A raw fenced region before naming and trimming rules are applied."""

    offset: int
    language: str
    path: str | None
    body: str
    closed: bool


def _parse_header(header: str) -> tuple[str, str | None]:
    parts = header.strip().split(None, 1)
    if not parts:
        return DEFAULT_LANGUAGE, None
    language = parts[0]
    path = parts[1].strip() if len(parts) > 1 else None
    return language, path or None


def _partial_fence_length(text: str) -> int:
    """Trailing backticks that may be the start of a fence split across feeds."""
    return min(len(text) - len(text.rstrip("`")), len(FENCE) - 1)


@dataclass
class FenceTokenizer:
    """Incremental fenced-block tokenizer.

    Only the unresolved tail (a header line in progress, a few trailing
    backticks) is buffered between feeds; body text is appended as it is
    confirmed not to contain a closing fence.
    """

    state: TokenizerState = TokenizerState.SEEKING_FENCE
    _blocks: list[FencedBlock] = field(default_factory=list)
    _pending: str = ""
    _consumed: int = 0
    _open_offset: int = 0
    _header: str = ""
    _language: str = DEFAULT_LANGUAGE
    _path: str | None = None
    _body: list[str] = field(default_factory=list)

    def feed(self, text: str) -> None:
        base = self._consumed - len(self._pending)
        data = self._pending + text
        self._pending = ""
        self._consumed += len(text)

        pos = 0
        while pos < len(data):
            if self.state is TokenizerState.SEEKING_FENCE:
                idx = data.find(FENCE, pos)
                if idx == -1:
                    keep = _partial_fence_length(data[pos:])
                    self._pending = data[len(data) - keep :] if keep else ""
                    return
                self._open_offset = base + idx
                self._header = ""
                self.state = TokenizerState.READING_HEADER
                pos = idx + len(FENCE)

            elif self.state is TokenizerState.READING_HEADER:
                newline = data.find("\n", pos)
                if newline == -1:
                    self._header += data[pos:]
                    return
                self._header += data[pos:newline]
                self._language, self._path = _parse_header(self._header)
                self._body = []
                self.state = TokenizerState.READING_BODY
                pos = newline + 1

            else:
                idx = data.find(FENCE, pos)
                if idx == -1:
                    keep = _partial_fence_length(data[pos:])
                    end = len(data) - keep
                    self._body.append(data[pos:end])
                    self._pending = data[end:]
                    return
                self._body.append(data[pos:idx])
                self._close_block(closed=True)
                pos = idx + len(FENCE)

    def finish(self) -> list[FencedBlock]:
        """End of input: close a truncated block and return all blocks."""
        if self.state is TokenizerState.READING_BODY:
            # Any pending backticks here are a partial closing fence.
            self._close_block(closed=False)
        elif self.state is TokenizerState.READING_HEADER:
            logger.debug(
                "Discarding fence at offset %d with unterminated header",
                self._open_offset,
            )
            self.state = TokenizerState.SEEKING_FENCE
        self._pending = ""
        return list(self._blocks)

    def _close_block(self, *, closed: bool) -> None:
        self._blocks.append(
            FencedBlock(
                offset=self._open_offset,
                language=self._language,
                path=self._path,
                body="".join(self._body),
                closed=closed,
            )
        )
        self._body = []
        self.state = TokenizerState.SEEKING_FENCE


def _clean_body(body: str) -> str:
    content = body.strip()
    if content.endswith(FENCE):
        content = content[: -len(FENCE)].strip()
    return content


def resolve_blocks(blocks: list[FencedBlock]) -> list[GeneratedFile]:
    """Apply naming and empty-block rules to tokenized blocks, in order.

    Blocks with the same path are all kept; reconciling duplicates is up to
    whoever persists the files.
    """
    files: list[GeneratedFile] = []
    for block in blocks:
        content = _clean_body(block.body)
        path = block.path or f"file{len(files)}.{extension_for(block.language)}"
        if not content:
            logger.debug("Skipped empty block for %s at offset %d", path, block.offset)
            continue
        files.append(
            GeneratedFile(
                name=path,
                path=path,
                language=block.language,
                content=content,
            )
        )
    return files


def extract_files(buffer: str) -> list[GeneratedFile]:
    """Extract every fenced file from ``buffer``. Never raises."""
    tokenizer = FenceTokenizer()
    tokenizer.feed(buffer)
    blocks = tokenizer.finish()
    if not blocks:
        logger.debug("No code blocks found in %d chars of content", len(buffer))
    files = resolve_blocks(blocks)
    logger.debug(
        "Extracted %d file(s) from %d block(s)", len(files), len(blocks)
    )
    return files
