"""Fold a flat path set into a directory tree with file counts."""

from collections.abc import Iterable

from vault_mcp.errors import NotFoundError
from vault_mcp.indexer.models import DirectoryNode
from vault_mcp.indexer.walker import normalize_vault_path


def build_structure(
    paths: Iterable[str],
    subfolder: str | None = None,
    root_name: str = "vault",
) -> DirectoryNode:
    """
    Build a DirectoryNode tree from vault-relative file paths.

    Args:
        paths: Vault-relative, forward-slash file paths
        subfolder: Optional folder to root the tree at
        root_name: Name of the root node when no subfolder is given

    Raises:
        NotFoundError: subfolder contains no path.
    """
    prefix = normalize_vault_path(subfolder)
    if prefix:
        selected = [p[len(prefix) + 1 :] for p in paths if p.startswith(prefix + "/")]
        if not selected:
            raise NotFoundError(f"Folder not found: {prefix}")
        root = DirectoryNode(name=prefix.rsplit("/", 1)[-1], path=prefix)
    else:
        selected = list(paths)
        root = DirectoryNode(name=root_name, path="")

    for rel in selected:
        *folders, filename = rel.split("/")
        node = root
        node.total_file_count += 1
        for folder in folders:
            node = _child(node, folder)
            node.total_file_count += 1
        node.files.append(filename)

    _sort(root)
    return root


def _child(node: DirectoryNode, name: str) -> DirectoryNode:
    for child in node.children:
        if child.name == name:
            return child
    path = f"{node.path}/{name}" if node.path else name
    child = DirectoryNode(name=name, path=path)
    node.children.append(child)
    return child


def _sort(node: DirectoryNode) -> None:
    node.files.sort()
    node.children.sort(key=lambda c: c.name)
    for child in node.children:
        _sort(child)
