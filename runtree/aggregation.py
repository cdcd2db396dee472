"""Bottom-up aggregation of results within a position tree."""

from collections import Counter
from collections.abc import MutableMapping, Sequence

from runtree.models.result import Result, ResultError
from runtree.models.tree import Tree


def collect_results(
    tree: Tree, results: MutableMapping[str, Result], *, running: bool = False
) -> Sequence[str]:
    """Propagate results from tests and files up to the root of tree.

    Children are folded into their parent after their own children, so a
    directory receives the errors of a file's tests through that file only.
    Ancestors start as passed and take the first non-passed, non-skipped
    status of the children folded into them. Errors are appended in order and
    repeated errors of different children are all kept. Errors an ancestor
    already carried before this pass count as folded in, so collecting an
    already collected mapping changes nothing. Tests and namespaces left
    without a result inherit the status and output of the root.

    Args:
        tree: Subtree to aggregate; nothing outside it is touched
        results: Results keyed by position id, updated in place
        running: Whether the root of tree is still marked as running

    Returns:
        Ids of the tests and namespaces that should stay marked as running

    """
    root = tree.data()
    _fold_children(tree, results, {})

    still_running: list[str] = []
    root_result = results.get(root.id)
    for node in tree.iter_nodes():
        pos = node.data()
        if pos.type not in ("test", "namespace"):
            continue
        if running:
            still_running.append(pos.id)
        if pos.id not in results and root_result is not None:
            results[pos.id] = Result(
                status=root_result.status, output=root_result.output
            )

    return still_running


def _fold_children(
    node: Tree,
    results: MutableMapping[str, Result],
    carried: dict[str, Counter[ResultError]],
) -> None:
    for child in node.children():
        _fold_children(child, results, carried)
        if child.key not in results:
            continue
        if node.key not in carried:
            parent = results.get(node.key)
            carried[node.key] = Counter(parent.errors if parent else ())
        results[node.key] = _fold(
            results.get(node.key), results[child.key], carried[node.key]
        )


def _fold(
    parent: Result | None, child: Result, carried: Counter[ResultError]
) -> Result:
    if parent is None:
        parent = Result(status="passed", output=child.output)

    status = parent.status
    if child.status != "skipped" and status == "passed":
        status = child.status

    errors = list(parent.errors)
    for error in child.errors:
        if carried[error]:
            carried[error] -= 1
        else:
            errors.append(error)

    return Result(status=status, output=parent.output, errors=tuple(errors))
