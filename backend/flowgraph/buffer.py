from dataclasses import replace

EDITABLE_FIELDS = ("label", "content")


class EditBuffer:
    """
    Holds the node currently open in the inspector.

    ``original`` is the snapshot taken at selection time and ``working`` is
    the copy the editing surface changes. Nothing reaches the graph until
    ``commit``.
    """

    def __init__(self, graph):
        self.graph = graph
        self.original = None
        self.working = None

    @property
    def node_id(self):
        return self.original.id if self.original else None

    @property
    def dirty(self):
        return self.working is not None and (
            self.working.label != self.original.label
            or self.working.content != self.original.content
        )

    def select(self, node_id):
        node = self.graph.get_node(node_id)
        self.original = replace(node)
        self.working = replace(node)
        return self.working

    def update(self, **fields):
        if self.working is None:
            return None
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            setattr(self.working, name, value)
        return self.working

    def commit(self):
        if self.working is None:
            return None
        node = self.graph.update_node(
            self.working.id,
            label=self.working.label,
            content=self.working.content,
        )
        self.clear()
        return node

    def revert(self):
        if self.original is None:
            return None
        restored = replace(self.original)
        self.clear()
        return restored

    def forget(self, node_id):
        """Drop the selection if it points at a node that was just deleted."""
        if self.node_id == node_id:
            self.clear()

    def clear(self):
        self.original = None
        self.working = None
