"""依赖图与依赖收集测试"""

import asyncio

import pytest

from modresolve.api import curseforge, modrinth
from modresolve.api.mock import MockTransport, json_response
from modresolve.api.base import TransportResponse
from modresolve.exceptions import (
    APIError,
    CycleDetectedError,
    NodeNotFoundError,
    RateLimitExhaustedError,
)
from modresolve.models import (
    DependencyNode,
    ModLoader,
    ModProjectType,
    ProjectPlatform,
    ResolvedProject,
    parse_dependency_spec,
)
from modresolve.services.dependency_resolver import DependencyCollector, DependencyGraph
from tests.conftest import make_client


def ids(nodes):
    return [node.id for node in nodes]


class TestDependencyGraph:
    """依赖图"""

    def test_diamond_yields_shared_dependency_once(self):
        graph = DependencyGraph.from_mapping(
            {"A": ["B", "C"], "B": ["D"], "C": ["D"], "D": []}
        )
        order = ids(graph.resolve())
        assert order.count("D") == 1
        assert order.index("D") < order.index("B")
        assert order.index("D") < order.index("C")
        assert order.index("B") < order.index("A")
        assert sorted(order) == ["A", "B", "C", "D"]

    def test_cycle_detected(self):
        graph = DependencyGraph.from_mapping({"A": ["B"], "B": ["C"], "C": ["A"]})
        with pytest.raises(CycleDetectedError) as exc_info:
            graph.resolve()
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B", "C"}
        assert "A -> B -> C -> A" in str(exc_info.value)

    def test_self_dependency(self):
        graph = DependencyGraph.from_mapping({"A": ["A"]})
        assert graph.detect_cycle() == ["A", "A"]

    def test_detect_cycle_none(self):
        graph = DependencyGraph.from_mapping({"A": ["B"], "B": []})
        assert graph.detect_cycle() is None

    def test_resolve_from_roots(self):
        graph = DependencyGraph.from_mapping({"A": ["B"], "B": [], "X": ["Y"], "Y": []})
        assert ids(graph.resolve(["A"])) == ["B", "A"]

    def test_unknown_dependency(self):
        graph = DependencyGraph.from_mapping({"A": ["ghost"]})
        with pytest.raises(NodeNotFoundError) as exc_info:
            graph.resolve()
        assert exc_info.value.node_id == "ghost"
        assert exc_info.value.required_by == "A"

    def test_unknown_root(self):
        with pytest.raises(NodeNotFoundError):
            DependencyGraph().resolve(["missing"])

    def test_add_dependency_requires_nodes(self):
        graph = DependencyGraph()
        graph.add_node(DependencyNode("A"))
        with pytest.raises(NodeNotFoundError, match="B"):
            graph.add_dependency("A", "B")
        with pytest.raises(NodeNotFoundError):
            graph.add_dependency("Z", "A")

    def test_add_node_idempotent(self):
        graph = DependencyGraph()
        graph.add_node(DependencyNode("A", {"B"}))
        graph.add_node(DependencyNode("A", {"C"}, name="Alpha"))
        assert graph.node_count() == 1
        assert graph.get_dependencies("A") == {"B", "C"}
        assert graph.get_node("A").display_name == "Alpha"

    def test_queries(self):
        graph = DependencyGraph.from_mapping(
            {"A": ["B", "C"], "B": ["D"], "C": ["D"], "D": []}
        )
        assert graph.contains("A") and "D" in graph
        assert not graph.contains("E")
        assert graph.edge_count() == 4
        assert graph.get_dependents("D") == {"B", "C"}
        assert graph.get_transitive_dependencies("A") == {"B", "C", "D"}
        assert graph.get_transitive_dependencies("D") == set()


SODIUM = ResolvedProject("AANobbMI", "Sodium", ProjectPlatform.MODRINTH, 150_000, "sodium")


def mr_versions(project_id, mc="1.20.1", loader=ModLoader.FABRIC):
    return modrinth.versions_url(project_id, mc, loader)


class TestDependencyCollector:
    """传递依赖收集"""

    def _spec(self, text="sodium: Sodium", **kwargs):
        return parse_dependency_spec(text, "1.20.1", ModLoader.FABRIC, **kwargs)

    def test_collects_required_modrinth_dependencies(self):
        transport = MockTransport()
        transport.set(
            mr_versions("AANobbMI"),
            json_response(
                [
                    {
                        "id": "v2",
                        "version_number": "0.5.8",
                        "dependencies": [
                            {"project_id": "P7dR8mSH", "dependency_type": "required"},
                            {"project_id": "optional1", "dependency_type": "optional"},
                        ],
                    },
                    {"id": "v1", "version_number": "0.5.7", "dependencies": []},
                ]
            ),
        )
        transport.set(
            modrinth.project_url("P7dR8mSH"),
            json_response(
                {"id": "P7dR8mSH", "title": "Fabric API", "slug": "fabric-api", "downloads": 9}
            ),
        )
        transport.set(
            mr_versions("P7dR8mSH"),
            json_response([{"id": "fapi1", "version_number": "0.92.0", "dependencies": []}]),
        )
        collector = DependencyCollector(make_client(transport))

        result = asyncio.run(collector.collect([(self._spec(), SODIUM)]))

        assert ids(result.graph.resolve()) == ["P7dR8mSH", "AANobbMI"]
        assert result.versions == {"AANobbMI": "v2", "P7dR8mSH": "fapi1"}
        assert result.keys == {"AANobbMI": "sodium"}
        assert result.projects["P7dR8mSH"].slug == "fabric-api"

    def test_version_override(self):
        transport = MockTransport()
        transport.set(
            mr_versions("AANobbMI"),
            json_response(
                [
                    {"id": "v2", "version_number": "0.5.8", "dependencies": []},
                    {"id": "v1", "version_number": "0.5.7", "dependencies": []},
                ]
            ),
        )
        collector = DependencyCollector(make_client(transport))
        spec = self._spec(version_overrides={"sodium": ["9.9.9", "0.5.7"]})

        result = asyncio.run(collector.collect([(spec, SODIUM)]))

        assert result.versions["AANobbMI"] == "v1"

    def test_no_compatible_version(self):
        transport = MockTransport().set(mr_versions("AANobbMI"), json_response([]))
        collector = DependencyCollector(make_client(transport))

        result = asyncio.run(collector.collect([(self._spec(), SODIUM)]))

        assert result.versions == {"AANobbMI": None}
        assert result.graph.node_count() == 1

    def test_curseforge_files(self):
        jei = ResolvedProject("238222", "JEI", ProjectPlatform.CURSEFORGE, 10)
        lib = {"id": 306612, "name": "Library", "slug": "library", "downloadCount": 5}
        transport = MockTransport()
        transport.set(
            curseforge.files_url("238222", "1.20.1", ModLoader.FABRIC),
            json_response(
                {
                    "data": [
                        {
                            "id": 5101366,
                            "displayName": "jei-1.20.1-fabric-15.3.0.4.jar",
                            "dependencies": [
                                {"modId": 306612, "relationType": 3},
                                {"modId": 111, "relationType": 2},
                            ],
                        }
                    ]
                }
            ),
        )
        transport.set(curseforge.project_url("306612"), json_response({"data": lib}))
        transport.set(
            curseforge.files_url("306612", "1.20.1", ModLoader.FABRIC),
            json_response({"data": [{"id": 42, "dependencies": []}]}),
        )
        collector = DependencyCollector(make_client(transport))

        result = asyncio.run(collector.collect([(self._spec("jei: JEI"), jei)]))

        assert ids(result.graph.resolve()) == ["306612", "238222"]
        assert result.versions["238222"] == "5101366"

    def test_missing_dependency_project_skipped(self):
        transport = MockTransport()
        transport.set(
            mr_versions("AANobbMI"),
            json_response(
                [{"id": "v2", "dependencies": [{"project_id": "gone", "dependency_type": "required"}]}]
            ),
        )
        transport.set(modrinth.project_url("gone"), json_response({}, status=404))
        collector = DependencyCollector(make_client(transport))

        result = asyncio.run(collector.collect([(self._spec(), SODIUM)]))

        assert result.graph.get_dependencies("AANobbMI") == set()

    def test_platform_cycle_surfaces_in_graph(self):
        a = ResolvedProject("aaaa", "A", ProjectPlatform.MODRINTH, 1)
        transport = MockTransport()
        transport.set(
            mr_versions("aaaa"),
            json_response(
                [{"id": "va", "dependencies": [{"project_id": "bbbb", "dependency_type": "required"}]}]
            ),
        )
        transport.set(
            modrinth.project_url("bbbb"),
            json_response({"id": "bbbb", "title": "B", "downloads": 1}),
        )
        transport.set(
            mr_versions("bbbb"),
            json_response(
                [{"id": "vb", "dependencies": [{"project_id": "aaaa", "dependency_type": "required"}]}]
            ),
        )
        collector = DependencyCollector(make_client(transport))

        result = asyncio.run(collector.collect([(self._spec("a: A"), a)]))

        with pytest.raises(CycleDetectedError):
            result.graph.resolve()

    def test_resourcepack_versions_not_filtered_by_loader(self):
        pack = ResolvedProject("pack1", "Faithful", ProjectPlatform.MODRINTH, 1)
        transport = MockTransport()
        transport.set(
            modrinth.versions_url("pack1", "1.20.1", None),
            json_response([{"id": "rp1", "dependencies": []}]),
        )
        collector = DependencyCollector(make_client(transport))
        spec = self._spec("faithful: Faithful|resourcepack")
        assert spec.project_type is ModProjectType.RESOURCE_PACK

        result = asyncio.run(collector.collect([(spec, pack)]))

        assert result.versions["pack1"] == "rp1"

    def _extra_needs_sodium(self, transport):
        transport.set(
            mr_versions("extra1"),
            json_response(
                [
                    {
                        "id": "ve",
                        "dependencies": [
                            {"project_id": "AANobbMI", "dependency_type": "required"}
                        ],
                    }
                ]
            ),
        )
        transport.set(
            modrinth.project_url("AANobbMI"),
            json_response({"id": "AANobbMI", "title": "Sodium", "slug": "sodium"}),
        )
        transport.set(
            mr_versions("AANobbMI"),
            json_response(
                [
                    {"id": "new", "version_number": "0.6.0", "dependencies": []},
                    {"id": "old", "version_number": "0.5.0", "dependencies": []},
                ]
            ),
        )

    def test_root_override_applies_when_listed_after_dependent(self):
        extra = ResolvedProject("extra1", "Sodium Extra", ProjectPlatform.MODRINTH, 1)
        transport = MockTransport()
        self._extra_needs_sodium(transport)
        collector = DependencyCollector(make_client(transport))
        roots = [
            (self._spec("extra: Sodium Extra"), extra),
            (self._spec(version_overrides={"sodium": ["0.5.0"]}), SODIUM),
        ]

        result = asyncio.run(collector.collect(roots))

        assert result.versions == {"extra1": "ve", "AANobbMI": "old"}
        assert result.keys == {"extra1": "extra", "AANobbMI": "sodium"}
        assert ids(result.graph.resolve()) == ["AANobbMI", "extra1"]
        assert transport.calls_to(modrinth.project_url("AANobbMI")) == []

    def test_root_order_does_not_change_selected_versions(self):
        extra = ResolvedProject("extra1", "Sodium Extra", ProjectPlatform.MODRINTH, 1)
        sodium_spec = self._spec(version_overrides={"sodium": ["0.5.0"]})
        extra_spec = self._spec("extra: Sodium Extra")

        def collect(roots):
            transport = MockTransport()
            self._extra_needs_sodium(transport)
            collector = DependencyCollector(make_client(transport))
            return asyncio.run(collector.collect(roots)).versions

        forward = collect([(sodium_spec, SODIUM), (extra_spec, extra)])
        backward = collect([(extra_spec, extra), (sodium_spec, SODIUM)])
        assert forward == backward == {"AANobbMI": "old", "extra1": "ve"}

    def test_failing_root_is_recorded_and_others_survive(self):
        lithium = ResolvedProject("gvQqBUqZ", "Lithium", ProjectPlatform.MODRINTH, 1)
        transport = MockTransport()
        transport.set(
            mr_versions("AANobbMI"), json_response([{"id": "v2", "dependencies": []}])
        )
        transport.set(mr_versions("gvQqBUqZ"), TransportResponse(503))
        collector = DependencyCollector(make_client(transport))
        roots = [(self._spec(), SODIUM), (self._spec("lithium: Lithium"), lithium)]

        result = asyncio.run(collector.collect(roots))

        assert result.versions == {"AANobbMI": "v2"}
        assert list(result.failures) == ["lithium"]
        assert isinstance(result.failures["lithium"], APIError)
        assert "gvQqBUqZ" not in result.graph

    def test_transitive_failure_is_charged_to_its_root(self):
        transport = MockTransport()
        transport.set(
            mr_versions("AANobbMI"),
            json_response(
                [{"id": "v2", "dependencies": [{"project_id": "P7dR8mSH", "dependency_type": "required"}]}]
            ),
        )
        collector = DependencyCollector(make_client(transport))

        result = asyncio.run(collector.collect([(self._spec(), SODIUM)]))

        assert list(result.failures) == ["sodium"]
        assert result.versions == {"AANobbMI": "v2"}

    def test_rate_limit_exhaustion_is_fatal(self):
        transport = MockTransport().set(mr_versions("AANobbMI"), TransportResponse(429))
        collector = DependencyCollector(make_client(transport))

        with pytest.raises(RateLimitExhaustedError):
            asyncio.run(collector.collect([(self._spec(), SODIUM)]))

    def test_malformed_versions_payload_names_platform(self):
        transport = MockTransport().set(
            mr_versions("AANobbMI"), json_response([{"version_number": "0.5.8"}])
        )
        collector = DependencyCollector(make_client(transport))

        result = asyncio.run(collector.collect([(self._spec(), SODIUM)]))

        error = result.failures["sodium"]
        assert "Modrinth 响应格式错误" in error.message
        assert error.url == mr_versions("AANobbMI")
