"""
文档引用图校验
纯函数，输入为内容图快照（文档ID -> 子文档ID列表），不访问数据库

document_sections 关系中除互相引用（A<->B）外不允许出现环；互相引用仅作提示，
由调用方根据策略决定警告还是拒绝
"""

from collections import deque
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from pydantic import BaseModel, Field

from courseplatform.core.exceptions import CycleError, SelfReferenceError, UnknownSectionError

GraphSnapshot = Mapping[str, Sequence[str]]


class GraphValidationReport(BaseModel):
    """校验通过后的结果"""

    doc_id: str
    sections: List[str] = Field(default_factory=list, description="去重后的子文档ID列表")
    mutual_references: List[str] = Field(default_factory=list, description="互相引用的子文档ID")

    @property
    def has_mutual_references(self) -> bool:
        return bool(self.mutual_references)


def dedupe_sections(proposed_sections: Iterable[str]) -> List[str]:
    """去重并保持首次出现的顺序"""
    seen: Set[str] = set()
    result = []
    for section_id in proposed_sections:
        if section_id not in seen:
            seen.add(section_id)
            result.append(section_id)
    return result


def validate_self_reference(doc_id: str, proposed_sections: Sequence[str]) -> None:
    """文档不能出现在自己的子文档列表中"""
    if doc_id in proposed_sections:
        raise SelfReferenceError(doc_id)


def validate_no_cycle(doc_id: str, proposed_sections: Sequence[str], graph: GraphSnapshot) -> None:
    """对每个候选子文档 child，从 child 的子文档出发（不再经过 child）做深度优先遍历，
    若能回到 doc_id 则形成长度不小于3的环，抛出 CycleError（path 为 [doc_id, child, ..., doc_id]）

    child 直接引用 doc_id 属于互相引用，不算环，由 find_mutual_references 报告。
    doc_id 自身在快照中的旧子文档列表不参与遍历（写入后会被 proposed_sections 替换）。
    每个节点最多展开一次，遍历深度不超过节点总数，快照本身损坏（含环）时同样能终止。
    """
    for child in dedupe_sections(proposed_sections):
        if child == doc_id:
            raise CycleError(doc_id, [doc_id, doc_id])

        visited: Set[str] = {child}
        stack = [
            (next_id, [doc_id, child, next_id])
            for next_id in reversed(list(graph.get(child, ())))
            if next_id != doc_id
        ]
        while stack:
            node, path = stack.pop()
            if node == doc_id:
                raise CycleError(doc_id, path)
            if node in visited:
                continue
            visited.add(node)

            for next_id in reversed(list(graph.get(node, ()))):
                if next_id == doc_id or next_id not in visited:
                    stack.append((next_id, path + [next_id]))


def find_mutual_references(doc_id: str, proposed_sections: Sequence[str], graph: GraphSnapshot) -> List[str]:
    """返回子文档列表中已经引用了 doc_id 的文档"""
    return [
        child for child in dedupe_sections(proposed_sections)
        if child != doc_id and doc_id in graph.get(child, ())
    ]


def validate_document_sections(
    doc_id: str,
    proposed_sections: Sequence[str],
    graph: GraphSnapshot,
    known_ids: Optional[Iterable[str]] = None
) -> GraphValidationReport:
    """按顺序执行全部校验：自引用、引用存在性、环检测，最后收集互相引用"""
    sections = dedupe_sections(proposed_sections)

    validate_self_reference(doc_id, sections)

    if known_ids is not None:
        known = set(known_ids)
        missing = [section_id for section_id in sections if section_id not in known]
        if missing:
            raise UnknownSectionError(doc_id, missing)

    validate_no_cycle(doc_id, sections, graph)

    return GraphValidationReport(
        doc_id=doc_id,
        sections=sections,
        mutual_references=find_mutual_references(doc_id, sections, graph)
    )


def apply_sections(graph: GraphSnapshot, doc_id: str, sections: Sequence[str]) -> Dict[str, List[str]]:
    """返回替换 doc_id 子文档后的新快照（不修改原快照）"""
    updated = {node: list(children) for node, children in graph.items()}
    updated[doc_id] = list(sections)
    return updated


def is_acyclic(graph: GraphSnapshot, allow_mutual: bool = True) -> bool:
    """Kahn 拓扑排序独立判断整张图是否无环

    allow_mutual 时互相引用的文档先用并查集合并为一个节点，只允许长度为2的环：
    互相引用首尾相接成环、同一组内的单向引用、组之间的环都判为有环
    """
    nodes: Set[str] = set(graph)
    for children in graph.values():
        nodes.update(children)
    edges = {(node, child) for node, children in graph.items() for child in children}

    parent = {node: node for node in nodes}

    def find(node: str) -> str:
        while parent[node] != node:
            parent[node] = parent[parent[node]]
            node = parent[node]
        return node

    def is_mutual(source: str, target: str) -> bool:
        return allow_mutual and source != target and (target, source) in edges

    for source, target in edges:
        if is_mutual(source, target) and source < target:
            source_root, target_root = find(source), find(target)
            if source_root == target_root:
                return False
            parent[source_root] = target_root

    adjacency: Dict[str, Set[str]] = {}
    for source, target in edges:
        if is_mutual(source, target):
            continue
        source_root, target_root = find(source), find(target)
        if source_root == target_root:
            return False
        adjacency.setdefault(source_root, set()).add(target_root)

    roots = {find(node) for node in nodes}
    in_degree: Dict[str, int] = {root: 0 for root in roots}
    for targets in adjacency.values():
        for target in targets:
            in_degree[target] += 1

    queue = deque(root for root, degree in in_degree.items() if degree == 0)
    visited = 0
    while queue:
        root = queue.popleft()
        visited += 1
        for target in adjacency.get(root, ()):
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    return visited == len(roots)
