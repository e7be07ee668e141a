"""Tests for fog item deduplication, overlay and persistence planning."""

import pytest
from shapely.geometry import Polygon, box

from dynfog.fog import (
    FogPlan,
    OverlayUpdate,
    apply_plan,
    clear_fog_plan,
    fog_item,
    overlay_item,
    plan_fog,
    region_commands,
    region_digest,
)
from dynfog.store import InMemoryStore
from dynfog.types import (
    MapBounds,
    SceneItem,
    SceneSnapshot,
    SceneView,
    meta_key,
)

BOUNDS = MapBounds(offset=(0.0, 0.0), size=(1000.0, 1000.0))
LEFT = box(0, 0, 400, 1000)
RIGHT = box(400, 0, 1000, 1000)


def _view(items=(), persistence=False, fow=False, color=None):
    metadata = {
        meta_key("visionEnabled"): True,
        meta_key("persistenceEnabled"): persistence,
        meta_key("fowEnabled"): fow,
    }
    if color:
        metadata[meta_key("fowColor")] = color
    snapshot = SceneSnapshot(items=list(items), metadata=metadata)
    return SceneView.from_snapshot(snapshot)


def _commands_area(commands):
    """Area of the first closed subpath of a command list."""
    pts = []
    for cmd in commands:
        if cmd[0] in ("M", "L"):
            pts.append((cmd[1], cmd[2]))
        elif cmd[0] == "Z":
            break
    return Polygon(pts).area


class RecordingStore(InMemoryStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def add_items(self, items):
        self.calls.append(("add", [i.id for i in items]))
        super().add_items(items)

    def update_items(self, ids, updater, fast=False):
        ids = list(ids)
        self.calls.append(("update", ids, fast))
        super().update_items(ids, updater, fast)

    def delete_items(self, ids):
        ids = list(ids)
        self.calls.append(("delete", ids))
        super().delete_items(ids)


class TestRegionDigest:
    def test_vertex_order_does_not_matter(self):
        a = Polygon([(0, 0), (4, 0), (4, 10), (0, 10)])
        b = Polygon([(4, 10), (0, 10), (0, 0), (4, 0)])
        assert region_digest(a) == region_digest(b)

    def test_float_noise_does_not_matter(self):
        a = box(0, 0, 400, 1000)
        b = box(0, 0, 400.0000000001, 1000)
        assert region_digest(a) == region_digest(b)

    def test_different_regions_differ(self):
        assert region_digest(LEFT) != region_digest(RIGHT)

    def test_hex_sha1(self):
        digest = region_digest(LEFT)
        assert len(digest) == 40
        int(digest, 16)


class TestRegionCommands:
    def test_single_ring(self):
        commands = region_commands(LEFT)
        assert [c[0] for c in commands] == ["M", "L", "L", "L", "Z"]
        assert _commands_area(commands) == pytest.approx(400000.0)

    def test_hole_is_its_own_subpath(self):
        donut = box(0, 0, 10, 10).difference(box(4, 4, 6, 6))
        commands = region_commands(donut)
        assert [c[0] for c in commands].count("M") == 2
        assert [c[0] for c in commands].count("Z") == 2

    def test_multipolygon(self):
        commands = region_commands(LEFT.union(box(600, 0, 700, 10)))
        assert [c[0] for c in commands].count("M") == 2

    def test_empty(self):
        assert region_commands(LEFT.difference(LEFT)) == []


class TestPlanFog:
    def test_new_regions_are_added(self):
        plan = plan_fog({"a": LEFT, "b": RIGHT}, _view(), BOUNDS)
        assert len(plan.add) == 2
        assert plan.delete == []
        item = plan.add[0]
        assert item.metadata[meta_key("isVisionFog")] is True
        assert item.metadata[meta_key("owners")] == ["a"]
        assert item.metadata[meta_key("a")] is True
        assert item.visible is False

    def test_identical_regions_share_one_item(self):
        regions = {"a": LEFT, "b": box(0, 0, 400, 1000)}
        plan = plan_fog(regions, _view(), BOUNDS)
        assert len(plan.add) == 1
        assert plan.add[0].metadata[meta_key("owners")] == ["a", "b"]
        assert len(plan.current) == 1

    def test_existing_digest_is_not_re_added(self):
        existing = fog_item(region_digest(LEFT), ["a"], region_commands(LEFT))
        plan = plan_fog({"a": LEFT}, _view([existing]), BOUNDS)
        assert plan.add == []
        assert plan.delete == []
        assert plan.is_empty()

    def test_stale_items_deleted_without_persistence(self):
        stale = fog_item(region_digest(LEFT), ["a"], [])
        plan = plan_fog({"a": RIGHT}, _view([stale]), BOUNDS)
        assert len(plan.add) == 1
        assert plan.delete == [stale.id]

    def test_stale_items_kept_with_persistence(self):
        stale = fog_item(region_digest(LEFT), ["a"], [])
        plan = plan_fog(
            {"a": RIGHT}, _view([stale], persistence=True), BOUNDS
        )
        assert len(plan.add) == 1
        assert plan.delete == []

    def test_duplicate_stored_items_are_collapsed(self):
        digest = region_digest(LEFT)
        first = fog_item(digest, ["a"], [])
        second = fog_item(digest, ["b"], [])
        second.id = "dup"
        plan = plan_fog({"a": LEFT}, _view([first, second]), BOUNDS)
        assert plan.add == []
        assert plan.delete == ["dup"]

    def test_overlay_created_when_missing(self):
        plan = plan_fog({"a": LEFT}, _view(fow=True, color="#112233"), BOUNDS)
        overlay = plan.overlay_add
        assert overlay is not None
        assert overlay.style["fillColor"] == "#112233"
        assert _commands_area(overlay.commands) == pytest.approx(600000.0)
        assert plan.overlay_update is None

    def test_overlay_updated_in_place(self):
        current = overlay_item([], "#000000")
        plan = plan_fog({"a": LEFT}, _view([current], fow=True), BOUNDS)
        assert plan.overlay_add is None
        assert plan.overlay_update.id == current.id
        assert _commands_area(plan.overlay_update.commands) == pytest.approx(
            600000.0
        )

    def test_overlay_is_unseen_by_everyone(self):
        regions = {"a": box(0, 0, 500, 1000), "b": box(500, 0, 1000, 500)}
        plan = plan_fog(regions, _view(fow=True), BOUNDS)
        assert _commands_area(plan.overlay_add.commands) == pytest.approx(
            250000.0
        )

    def test_overlay_deleted_when_fow_off(self):
        current = overlay_item([], "#000000")
        plan = plan_fog({"a": LEFT}, _view([current]), BOUNDS)
        assert current.id in plan.delete


class TestClearFogPlan:
    def test_deletes_everything_we_own(self):
        items = [
            fog_item("d1", ["a"], []),
            fog_item("d2", ["b"], []),
            overlay_item([], "#000000"),
            SceneItem(id="other", layer="DRAWING"),
        ]
        plan = clear_fog_plan(_view(items))
        assert sorted(plan.delete) == sorted(
            ["dynfog-d1", "dynfog-d2", "dynfog-overlay"]
        )

    def test_deletes_legacy_trail_fog(self):
        trail = SceneItem(
            id="trail",
            layer="FOG",
            metadata={meta_key("isTrailingFog"): True},
        )
        plan = clear_fog_plan(_view([trail, fog_item("d1", ["a"], [])]))
        assert sorted(plan.delete) == ["dynfog-d1", "trail"]


class TestApplyPlan:
    def test_adds_before_deletes(self):
        stale = fog_item("old", ["a"], [])
        overlay = overlay_item([], "#000000")
        store = RecordingStore([stale, overlay])
        plan = FogPlan(
            add=[fog_item("new", ["a"], [])],
            overlay_update=OverlayUpdate(overlay.id, [["Z"]], "#ff0000"),
            delete=[stale.id],
        )
        apply_plan(store, plan)
        assert store.calls == [
            ("add", ["dynfog-new"]),
            ("update", [overlay.id], True),
            ("delete", [stale.id]),
        ]
        assert store.item(overlay.id).commands == [["Z"]]
        assert store.item(overlay.id).style["fillColor"] == "#ff0000"
        assert store.fast_updates == 1

    def test_empty_plan_writes_nothing(self):
        store = RecordingStore()
        apply_plan(store, FogPlan())
        assert store.calls == []
        assert store.mutations == 0
