"""
Graph Models - nodes, edges and workflows.

Node is a tagged union keyed by ``kind`` (serialized as ``type``, the
editor's wire name). Every variant carries its own data record with the
shared runtime sub-record ``{isLoading, error, output}``.

Nodes, node data and edges are frozen: changes go through
GraphStore.patch_node_data, which builds a new value.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
    model_validator,
)


class NodeKind(str, Enum):
    """Closed set of node kinds."""
    TEXT = "text"
    IMAGE = "image"
    LLM = "llm"
    CROP = "crop"
    EXTRACT = "extract"
    VIDEO = "video"


DEFAULT_OUTPUT_HANDLE = "output"

# Runtime keys of every kind. Never durable.
RUNTIME_KEYS = frozenset({"isLoading", "error", "output"})
DERIVED_KEYS = frozenset({"croppedImageUrl", "extractedFrameUrl", "extractedFrameSource"})


class Position(BaseModel):
    """Node position in the canvas."""
    model_config = ConfigDict(frozen=True)

    x: float = 0
    y: float = 0


# ==============================================================================
# Node data
# ==============================================================================

class NodeData(BaseModel):
    """
    Shared runtime sub-record, embedded in every kind's data.

    Unknown keys (UI labels and the like) are kept as extras.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    is_loading: bool = Field(False, alias="isLoading")
    error: Optional[str] = None
    output: Any = None

    # Wire names of kind-specific fields computed per run
    DERIVED_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # Derived fields cleared when the node enters Running
    RESET_ON_RUN: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def runtime_fields(cls) -> frozenset:
        """Wire names of every runtime-only field of this kind."""
        return RUNTIME_KEYS | frozenset(cls.DERIVED_FIELDS)

    @classmethod
    def wire_name(cls, key: str) -> str:
        """Map a Python field name to its serialized name."""
        info = cls.model_fields.get(key)
        if info is not None and info.alias:
            return info.alias
        return key

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def merged(self, partial: Mapping[str, Any]) -> "NodeData":
        """Shallow-merge ``partial`` into a new record; other fields are kept."""
        current = self.to_wire()
        current.update({self.wire_name(k): v for k, v in partial.items()})
        return type(self).model_validate(current)

    def idle(self) -> "NodeData":
        """Copy with the runtime sub-record and derived fields reset."""
        reset: Dict[str, Any] = {"isLoading": False, "error": None, "output": None}
        for name in self.DERIVED_FIELDS:
            reset[name] = None
        return self.merged(reset)


class TextData(NodeData):
    text: str = ""


class ImageData(NodeData):
    image_url: Optional[str] = Field(None, alias="imageUrl")
    image_base64: Optional[str] = Field(None, alias="imageBase64")
    file_name: Optional[str] = Field(None, alias="fileName")


class VideoData(NodeData):
    video_url: Optional[str] = Field(None, alias="videoUrl")
    file_name: Optional[str] = Field(None, alias="fileName")


class LLMData(NodeData):
    model: str = "gemini-2.5-flash"
    prompt: str = ""
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")


class CropData(NodeData):
    x_percent: float = 0
    y_percent: float = 0
    width_percent: float = 100
    height_percent: float = 100
    cropped_image_url: Optional[str] = Field(None, alias="croppedImageUrl")

    DERIVED_FIELDS: ClassVar[Tuple[str, ...]] = ("croppedImageUrl",)
    RESET_ON_RUN: ClassVar[Tuple[str, ...]] = ("croppedImageUrl",)


class ExtractData(NodeData):
    timestamp: str = "0"
    extracted_frame_url: Optional[str] = Field(None, alias="extractedFrameUrl")
    # Key of the (video, timestamp) pair the cached frame was taken from
    extracted_frame_source: Optional[str] = Field(None, alias="extractedFrameSource")

    # The frame is a pre-pass cache, so it survives entering Running
    DERIVED_FIELDS: ClassVar[Tuple[str, ...]] = ("extractedFrameUrl", "extractedFrameSource")

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Any:
        """Accept numeric timestamps from the editor."""
        if v is None:
            return "0"
        if isinstance(v, (int, float)):
            return str(v)
        return v

    def merged(self, partial: Mapping[str, Any]) -> "NodeData":
        """A new timestamp invalidates the cached frame."""
        updated = super().merged(partial)
        if updated.timestamp != self.timestamp and "extractedFrameUrl" not in {
            self.wire_name(k) for k in partial
        }:
            updated = super(ExtractData, updated).merged(
                {"extractedFrameUrl": None, "extractedFrameSource": None}
            )
        return updated


# ==============================================================================
# Nodes
# ==============================================================================

class BaseNode(BaseModel):
    """Fields and handle declarations common to every node kind."""
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str
    position: Position = Field(default_factory=Position)

    INPUT_HANDLES: ClassVar[Tuple[str, ...]] = ()
    OUTPUT_HANDLES: ClassVar[Tuple[str, ...]] = (DEFAULT_OUTPUT_HANDLE,)

    def with_data(self, partial: Mapping[str, Any]):
        return self.model_copy(update={"data": self.data.merged(partial)})

    def with_position(self, position: Position):
        return self.model_copy(update={"position": position})

    def idle(self):
        return self.model_copy(update={"data": self.data.idle()})

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TextNode(BaseNode):
    kind: Literal["text"] = Field("text", alias="type")
    data: TextData = Field(default_factory=TextData)


class ImageNode(BaseNode):
    kind: Literal["image"] = Field("image", alias="type")
    data: ImageData = Field(default_factory=ImageData)

    INPUT_HANDLES: ClassVar[Tuple[str, ...]] = ("input",)


class VideoNode(BaseNode):
    kind: Literal["video"] = Field("video", alias="type")
    data: VideoData = Field(default_factory=VideoData)

    INPUT_HANDLES: ClassVar[Tuple[str, ...]] = ("input",)


class LLMNode(BaseNode):
    kind: Literal["llm"] = Field("llm", alias="type")
    data: LLMData = Field(default_factory=LLMData)

    INPUT_HANDLES: ClassVar[Tuple[str, ...]] = ("system_prompt", "user_message", "images")


class CropNode(BaseNode):
    kind: Literal["crop"] = Field("crop", alias="type")
    data: CropData = Field(default_factory=CropData)

    INPUT_HANDLES: ClassVar[Tuple[str, ...]] = ("image_url",)


class ExtractNode(BaseNode):
    kind: Literal["extract"] = Field("extract", alias="type")
    data: ExtractData = Field(default_factory=ExtractData)

    INPUT_HANDLES: ClassVar[Tuple[str, ...]] = ("video_url", "timestamp")


def _node_kind(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("type", value.get("kind"))
    return getattr(value, "kind", None)


Node = Annotated[
    Union[
        Annotated[TextNode, Tag("text")],
        Annotated[ImageNode, Tag("image")],
        Annotated[LLMNode, Tag("llm")],
        Annotated[CropNode, Tag("crop")],
        Annotated[ExtractNode, Tag("extract")],
        Annotated[VideoNode, Tag("video")],
    ],
    Discriminator(_node_kind),
]

NODE_CLASSES: Dict[str, type] = {
    NodeKind.TEXT.value: TextNode,
    NodeKind.IMAGE.value: ImageNode,
    NodeKind.LLM.value: LLMNode,
    NodeKind.CROP.value: CropNode,
    NodeKind.EXTRACT.value: ExtractNode,
    NodeKind.VIDEO.value: VideoNode,
}

_node_adapter = TypeAdapter(Node)


def node_class(kind: Union[str, NodeKind]) -> type:
    """Get the node class for a kind."""
    key = kind.value if isinstance(kind, NodeKind) else kind
    try:
        return NODE_CLASSES[key]
    except KeyError:
        raise ValueError(f"Unknown node kind: {kind}") from None


def parse_node(data: Union[Mapping[str, Any], BaseNode]) -> BaseNode:
    """Parse a node dict (wire format) into its kind's model."""
    if isinstance(data, BaseNode):
        return data
    return _node_adapter.validate_python(dict(data))


# ==============================================================================
# Edges and workflows
# ==============================================================================

def _edge_id() -> str:
    return f"edge_{uuid.uuid4().hex[:12]}"


class Edge(BaseModel):
    """
    Directed connection from a source output handle to a target input handle.

    Example: {"source": "img-1", "sourceHandle": "output",
              "target": "crop-1", "targetHandle": "image_url"}
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str = Field(default_factory=_edge_id)
    source: str
    source_handle: Optional[str] = Field(DEFAULT_OUTPUT_HANDLE, alias="sourceHandle")
    target: str
    target_handle: Optional[str] = Field(None, alias="targetHandle")

    @property
    def input_key(self) -> Tuple[str, Optional[str]]:
        """The (target, targetHandle) pair this edge occupies."""
        return (self.target, self.target_handle)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Workflow(BaseModel):
    """A named, owned graph of nodes and edges."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str = "Untitled Workflow"
    owner_id: Optional[str] = Field(None, alias="ownerId")
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_structure(self) -> "Workflow":
        ids = [node.id for node in self.nodes]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate node ids in workflow")
        known = set(ids)
        for edge in self.edges:
            if edge.source not in known or edge.target not in known:
                raise ValueError(f"Edge {edge.id} references missing node(s)")
        return self

    def get_node(self, node_id: str) -> Optional[BaseNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


@dataclass(frozen=True)
class GraphSnapshot:
    """
    Immutable view of the graph at one point in time.

    Snapshots share unchanged node and edge objects with each other.
    """
    nodes: Tuple[BaseNode, ...] = field(default_factory=tuple)
    edges: Tuple[Edge, ...] = field(default_factory=tuple)

    def get_node(self, node_id: str) -> Optional[BaseNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.target == node_id]


__all__ = [
    "NodeKind",
    "Position",
    "NodeData",
    "TextData",
    "ImageData",
    "VideoData",
    "LLMData",
    "CropData",
    "ExtractData",
    "BaseNode",
    "TextNode",
    "ImageNode",
    "VideoNode",
    "LLMNode",
    "CropNode",
    "ExtractNode",
    "Node",
    "NODE_CLASSES",
    "node_class",
    "parse_node",
    "Edge",
    "Workflow",
    "GraphSnapshot",
    "RUNTIME_KEYS",
    "DERIVED_KEYS",
    "DEFAULT_OUTPUT_HANDLE",
]
