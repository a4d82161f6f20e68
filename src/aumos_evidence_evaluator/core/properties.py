"""Property store: namespaced annotations on a Result.

Two properties drive evaluation:
- target:    groups Results that are comparable to one another
- threshold: "true" marks the Result currently accepted as the baseline

Artifacts written by older releases use a legacy namespace. Reads accept
every spelling listed in NAMESPACE_ALIASES for the requested namespace;
upsert_property() is the only write path and always stamps the current
spelling, migrating a legacy property in place when it updates one.
"""

from __future__ import annotations

from dataclasses import dataclass

from aumos_evidence_evaluator.core.models import Property, Result

EVALUATOR_NAMESPACE = "https://docs.aumos.ai/oscal/ns"
LEGACY_EVALUATOR_NAMESPACE = "https://docs.aumos.ai/ns"

PROP_TARGET = "target"
PROP_THRESHOLD = "threshold"

# current namespace -> every spelling accepted on read
NAMESPACE_ALIASES: dict[str, tuple[str, ...]] = {
    EVALUATOR_NAMESPACE: (EVALUATOR_NAMESPACE, LEGACY_EVALUATOR_NAMESPACE),
}


def accepted_namespaces(namespace: str) -> tuple[str, ...]:
    """Return every namespace spelling that matches the requested one.

    Args:
        namespace: The namespace a caller asked for.

    Returns:
        The namespace itself plus any legacy spellings registered for it.
    """
    return NAMESPACE_ALIASES.get(namespace, (namespace,))


def _matches(prop: Property, name: str, namespaces: tuple[str, ...]) -> bool:
    return prop.name == name and prop.ns in namespaces


def get_property(
    name: str,
    namespace: str,
    properties: list[Property] | None,
) -> tuple[bool, str]:
    """Look up a property by name in the current or a legacy namespace.

    Args:
        name: Property name, e.g. "threshold".
        namespace: The current namespace for the property.
        properties: The Result's props list. None is treated as empty.

    Returns:
        (found, value). value is "" when the property is absent.
    """
    namespaces = accepted_namespaces(namespace)
    for prop in properties or []:
        if _matches(prop, name, namespaces):
            return True, prop.value
    return False, ""


def upsert_property(
    name: str,
    namespace: str,
    value: str,
    properties: list[Property],
) -> bool:
    """Set a property value, migrating legacy namespaces to the current one.

    The first property matching name in an accepted namespace is updated in
    place and re-stamped with the current namespace. When none matches a new
    property is appended in the current namespace only.

    Args:
        name: Property name.
        namespace: The current namespace to write.
        value: The new value.
        properties: The Result's live props list (mutated).

    Returns:
        True if the list changed (value, namespace, or a new entry).
    """
    namespaces = accepted_namespaces(namespace)
    for prop in properties:
        if _matches(prop, name, namespaces):
            if prop.value == value and prop.ns == namespace:
                return False
            prop.value = value
            prop.ns = namespace
            return True
    properties.append(Property(name=name, ns=namespace, value=value))
    return True


def is_threshold(result: Result) -> bool:
    """Return True when the Result is marked as the current baseline."""
    found, value = get_property(PROP_THRESHOLD, EVALUATOR_NAMESPACE, result.props)
    return found and value == "true"


def target_of(result: Result, default_target: str) -> str:
    """Return the Result's target name, or default_target when it has none."""
    found, value = get_property(PROP_TARGET, EVALUATOR_NAMESPACE, result.props)
    return value if found and value else default_target


@dataclass
class PropertyUpdate:
    """A deferred property write against one Result.

    Grouping and resolution never mutate props directly. They emit updates
    that the engine applies once, in order, after every decision is made.

    Attributes:
        result: The Result whose props will be written.
        name: Property name.
        value: Value to write.
        namespace: Namespace to stamp (always the current one).
    """

    result: Result
    name: str
    value: str
    namespace: str = EVALUATOR_NAMESPACE


def threshold_update(result: Result, marked: bool) -> PropertyUpdate:
    """Build a threshold marker update for a Result."""
    return PropertyUpdate(result=result, name=PROP_THRESHOLD, value="true" if marked else "false")


def apply_updates(updates: list[PropertyUpdate]) -> list[Result]:
    """Apply deferred property updates in order.

    Later updates for the same (result, name) pair win. Updates are
    collapsed first so a value that flips and flips back leaves the Result
    untouched.

    Args:
        updates: Updates in the order they were decided.

    Returns:
        Results whose props actually changed, each listed once.
    """
    final: dict[tuple[int, str], PropertyUpdate] = {}
    for update in updates:
        final[(id(update.result), update.name)] = update

    changed: list[Result] = []
    seen: set[int] = set()
    for update in final.values():
        if upsert_property(update.name, update.namespace, update.value, update.result.ensure_props()):
            if id(update.result) not in seen:
                seen.add(id(update.result))
                changed.append(update.result)
    return changed
