"""
Node handlers - what each node kind does when it runs.

A handler is an async callable taking a NodeContext and returning a
NodeResult. Handlers raise on failure; the executor turns the exception
into the node's error.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from mediaflow.config import Settings
from mediaflow.errors import MissingInputError
from mediaflow.graph.models import BaseNode, Edge, NodeKind
from mediaflow.graph.store import GraphStore
from mediaflow.integrations.gemini import GeminiClient
from mediaflow.media import CropBox, crop_image, extract_frame
from mediaflow.runtime.graph import CompiledGraph

# Upstream fields read as a node's value, highest priority first
VALUE_PRIORITY = (
    "output",
    "croppedImageUrl",
    "extractedFrameUrl",
    "imageUrl",
    "imageBase64",
    "videoUrl",
    "text",
)

TEXT_KINDS = frozenset({NodeKind.TEXT.value, NodeKind.LLM.value})
IMAGE_KINDS = frozenset({NodeKind.IMAGE.value, NodeKind.CROP.value, NodeKind.EXTRACT.value})

INPUT_PLACEHOLDER = "{input}"


def node_value(node: BaseNode) -> Any:
    """The value a node passes downstream, or None when it has none."""
    data = node.data.to_wire()
    for key in VALUE_PRIORITY:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


@dataclass
class NodeResult:
    """Output of a handler plus any derived fields to store on the node."""
    output: Any
    derived: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeContext:
    """Everything a handler may read while its node runs."""
    node: BaseNode
    graph: CompiledGraph
    store: GraphStore
    settings: Settings
    gemini: GeminiClient

    def upstream_node(self, handle: str) -> Optional[BaseNode]:
        """The node connected to ``handle``, read from the live store."""
        edge = self.graph.input_edge(self.node.id, handle)
        if edge is None:
            return None
        return self.store.get_node(edge.source)

    def input_value(self, handle: str, required: bool = True) -> Any:
        """
        Read the value arriving on ``handle``.

        Raises:
            MissingInputError: If a required handle is unconnected or its
                upstream has no value
        """
        upstream = self.upstream_node(handle)
        value = node_value(upstream) if upstream is not None else None
        if value is None and required:
            raise MissingInputError(handle)
        return value

    def incoming(self) -> List[Tuple[Edge, BaseNode]]:
        return [
            (edge, self.store.get_node(edge.source))
            for edge in self.graph.input_edges(self.node.id)
        ]


Handler = Callable[[NodeContext], Awaitable[NodeResult]]


async def run_text(ctx: NodeContext) -> NodeResult:
    return NodeResult(output=ctx.node.data.text)


async def run_image(ctx: NodeContext) -> NodeResult:
    data = ctx.node.data
    image = data.image_url or data.image_base64
    if not image:
        raise MissingInputError("imageUrl")
    return NodeResult(output=image)


async def run_video(ctx: NodeContext) -> NodeResult:
    if not ctx.node.data.video_url:
        raise MissingInputError("videoUrl")
    return NodeResult(output=ctx.node.data.video_url)


def render_prompt(template: str, upstream_text: str) -> str:
    """
    Fill the prompt template.

    ``{input}`` is replaced by the upstream text; without the placeholder
    the template and the upstream text are joined by a blank line.
    """
    if INPUT_PLACEHOLDER in template:
        return template.replace(INPUT_PLACEHOLDER, upstream_text)
    return "\n\n".join(part for part in (template, upstream_text) if part)


async def run_llm(ctx: NodeContext) -> NodeResult:
    data = ctx.node.data
    system_prompt = data.system_prompt
    texts: List[str] = []
    images: List[str] = []

    for edge, upstream in ctx.incoming():
        value = node_value(upstream)
        if value is None:
            raise MissingInputError(edge.target_handle)
        if edge.target_handle == "system_prompt":
            system_prompt = str(value)
        elif upstream.kind in IMAGE_KINDS:
            images.append(value)
        else:
            texts.append(str(value))

    prompt = render_prompt(data.prompt, "\n\n".join(texts))
    if not prompt.strip() and not images:
        raise MissingInputError("user_message")

    text = await ctx.gemini.generate_content(
        prompt,
        model=data.model,
        system_instruction=system_prompt or None,
        images=images,
    )
    return NodeResult(output=text)


async def run_crop(ctx: NodeContext) -> NodeResult:
    data = ctx.node.data
    image = ctx.input_value("image_url")
    box = CropBox(
        x_percent=data.x_percent,
        y_percent=data.y_percent,
        width_percent=data.width_percent,
        height_percent=data.height_percent,
    )
    cropped = await crop_image(image, box, timeout_s=ctx.settings.media_timeout_s)
    return NodeResult(output=cropped, derived={"croppedImageUrl": cropped})


def frame_source_key(video_url: str, timestamp: str) -> str:
    """Identify the frame of ``video_url`` at ``timestamp``."""
    digest = hashlib.sha1(video_url.encode("utf-8")).hexdigest()
    return f"{digest}@{timestamp}"


async def run_extract(ctx: NodeContext) -> NodeResult:
    data = ctx.node.data
    video_url = str(ctx.input_value("video_url"))
    # A connected timestamp handle without a value falls back to the node's own
    timestamp = ctx.input_value("timestamp", required=False)
    if timestamp is None:
        timestamp = data.timestamp
    timestamp = str(timestamp)

    source = frame_source_key(video_url, timestamp)
    if data.extracted_frame_url and data.extracted_frame_source == source:
        return NodeResult(output=data.extracted_frame_url)

    frame = await extract_frame(video_url, timestamp, settings=ctx.settings)
    return NodeResult(
        output=frame,
        derived={"extractedFrameUrl": frame, "extractedFrameSource": source},
    )


DEFAULT_HANDLERS: Dict[str, Handler] = {
    NodeKind.TEXT.value: run_text,
    NodeKind.IMAGE.value: run_image,
    NodeKind.VIDEO.value: run_video,
    NodeKind.LLM.value: run_llm,
    NodeKind.CROP.value: run_crop,
    NodeKind.EXTRACT.value: run_extract,
}


__all__ = [
    "DEFAULT_HANDLERS",
    "Handler",
    "NodeContext",
    "NodeResult",
    "frame_source_key",
    "node_value",
    "render_prompt",
]
