from typing import TYPE_CHECKING, Annotated, Any, NamedTuple, TypeVar, Union, get_args, get_origin

T = TypeVar("T")
_ANNOTATED_MARKER_MIN_ARGS = 2


class Component(NamedTuple):
    """Differentiate multiple registrations for the same service.

    Attach ``Component`` metadata to ``typing.Annotated`` so pinwire treats the
    annotated descriptor as a keyed lookup. ``Annotated[Database,
    Component("replica")]`` is equivalent to ``resolve(Database, key="replica")``.

    Examples:
        .. code-block:: python

            from typing import Annotated, TypeAlias


            class Database: ...


            ReplicaDb: TypeAlias = Annotated[Database, Component("replica")]
            PrimaryDb: TypeAlias = Annotated[Database, Component("primary")]

    """

    value: Any


class InjectedMarker:
    """A marker used to indicate an attribute or test parameter should be injected.

    Class annotations carrying this marker are populated after construction.
    """


if TYPE_CHECKING:
    Injected = Union[T, T]  # noqa: UP007,PYI016
    """Mark a class attribute for container-driven injection.

    At runtime ``Injected[T]`` becomes ``Annotated[T, InjectedMarker()]``.

    Examples:
        .. code-block:: python

            class Handler:
                audit: Injected[AuditLog]
    """

else:

    class Injected:
        """Mark a class attribute for container-driven injection.

        At runtime ``Injected[T]`` resolves to ``Annotated[T, InjectedMarker()]``.
        Markers are inherited: subclasses get every marked attribute declared
        on their bases.

        Examples:
            .. code-block:: python

                class Handler:
                    audit: Injected[AuditLog]

        """

        def __class_getitem__(cls, item: T) -> Annotated[T, InjectedMarker]:
            if get_origin(item) is Annotated:
                args = get_args(item)
                inner = args[0]
                metadata = args[1:]
                return _build_annotated((inner, *metadata, InjectedMarker()))
            return _build_annotated((item, InjectedMarker()))


def is_injected_annotation(annotation: Any) -> bool:
    """Return True when annotation is Annotated[..., InjectedMarker()]."""
    if get_origin(annotation) is not Annotated:
        return False
    annotation_args = get_args(annotation)
    if len(annotation_args) < _ANNOTATED_MARKER_MIN_ARGS:
        return False
    return any(isinstance(item, InjectedMarker) for item in annotation_args[1:])


def strip_injected_annotation(annotation: Any) -> Any:
    """Strip the Injected marker while preserving other Annotated metadata."""
    if not is_injected_annotation(annotation):
        return annotation

    annotation_args = get_args(annotation)
    parameter_type = annotation_args[0]
    metadata = tuple(item for item in annotation_args[1:] if not isinstance(item, InjectedMarker))
    if not metadata:
        return parameter_type
    return _build_annotated((parameter_type, *metadata))


def split_component(annotation: Any) -> tuple[Any, Component | None]:
    """Split ``Annotated[T, Component(key)]`` into ``(T, Component(key))``.

    Other ``Annotated`` metadata is dropped; plain descriptors are returned
    unchanged with ``None``.
    """
    if get_origin(annotation) is not Annotated:
        return annotation, None
    annotation_args = get_args(annotation)
    component = next(
        (item for item in annotation_args[1:] if isinstance(item, Component)),
        None,
    )
    if component is None:
        return annotation_args[0], None
    return annotation_args[0], component


def _build_annotated(params: tuple[object, ...]) -> Any:
    """Return Annotated[...] with a pre-built params tuple (Py 3.10+ compatible)."""
    try:
        return Annotated.__class_getitem__(params)  # type: ignore[attr-defined]
    except AttributeError:
        return Annotated.__getitem__(params)  # type: ignore[attr-defined]
