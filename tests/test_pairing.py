"""Tests for the pairing engine."""

import pytest
from pydantic import ValidationError

from batchsim.jobs.models import GenerationParams, PairingMode
from batchsim.jobs.pairing import build_jobs, normalize_inputs


PROMPTS = ["p1", "p2", "p3"]


class TestOneToMany:
    def test_every_prompt_gets_all_shared_refs(self):
        jobs = build_jobs(PairingMode.ONE_TO_MANY, shared_refs=["S1", "S2"], prompts=PROMPTS)

        assert len(jobs) == 3
        assert all(j.refs == ("S1", "S2") for j in jobs)
        assert [j.prompt for j in jobs] == PROMPTS

    def test_groups_are_ignored(self):
        jobs = build_jobs("one-to-many", shared_refs=["S1"], prompts=PROMPTS, per_prompt_groups=[["X"], ["Y"]])

        assert [j.refs for j in jobs] == [("S1",)] * 3

    def test_no_shared_refs_gives_text_only_jobs(self):
        jobs = build_jobs("one-to-many", shared_refs=[], prompts=["x", "y"])

        assert len(jobs) == 2
        assert all(j.refs == () for j in jobs)

    def test_falsy_shared_refs_are_filtered(self):
        jobs = build_jobs("one-to-many", shared_refs=["S1", "", None, "S2"], prompts=["x"])

        assert jobs[0].refs == ("S1", "S2")

    @pytest.mark.parametrize("count", [1, 2, 5, 9])
    def test_indices_are_sequential(self, count):
        prompts = [f"p{i}" for i in range(count)]
        jobs = build_jobs("one-to-many", shared_refs=["S"], prompts=prompts)

        assert [j.index for j in jobs] == list(range(count))


class TestZip:
    def test_positional_pairing(self):
        groups = [["A"], ["B", "C"], ["D"]]
        jobs = build_jobs(PairingMode.ZIP, prompts=PROMPTS, per_prompt_groups=groups)

        assert len(jobs) == 3
        assert jobs[1].refs == ("B", "C")
        assert [list(j.refs) for j in jobs] == groups

    def test_more_prompts_than_groups_truncates(self):
        jobs = build_jobs("zip", prompts=["p1", "p2", "p3", "p4"], per_prompt_groups=[["r1"], ["r2"]])

        assert len(jobs) == 2
        assert [j.prompt for j in jobs] == ["p1", "p2"]

    def test_more_groups_than_prompts_truncates(self):
        jobs = build_jobs("zip", prompts=["p1"], per_prompt_groups=[["r1"], ["r2"], ["r3"]])

        assert len(jobs) == 1
        assert jobs[0].refs == ("r1",)

    def test_missing_groups_gives_no_jobs(self):
        assert build_jobs("zip", prompts=PROMPTS) == []

    def test_empty_group_is_kept(self):
        jobs = build_jobs("zip", prompts=["a", "b"], per_prompt_groups=[[], ["B"]])

        assert jobs[0].refs == ()
        assert jobs[1].refs == ("B",)


class TestCartesian:
    def test_groups_are_whole_options(self):
        jobs = build_jobs(PairingMode.CARTESIAN, prompts=["a", "b", "c"], per_prompt_groups=[[], ["B", "C"], ["D"]])

        assert len(jobs) == 9
        assert sum(1 for j in jobs if j.refs == ()) == 3

    def test_prompt_outer_group_inner_ordering(self):
        jobs = build_jobs("cartesian", prompts=["a", "b"], per_prompt_groups=[["X"], ["Y", "Z"]])

        assert [(j.index, j.prompt, j.refs) for j in jobs] == [
            (0, "a", ("X",)),
            (1, "a", ("Y", "Z")),
            (2, "b", ("X",)),
            (3, "b", ("Y", "Z")),
        ]

    def test_groups_take_precedence_over_shared_refs(self):
        jobs = build_jobs("cartesian", prompts=["a"], shared_refs=["S1", "S2", "S3"], per_prompt_groups=[["G"]])

        assert [j.refs for j in jobs] == [("G",)]

    def test_fallback_uses_each_shared_ref_individually(self):
        jobs = build_jobs("cartesian", prompts=PROMPTS, shared_refs=["S1", "S2"])

        assert len(jobs) == 6
        assert all(len(j.refs) == 1 for j in jobs)
        assert [j.refs[0] for j in jobs[:2]] == ["S1", "S2"]
        assert [j.index for j in jobs] == list(range(6))

    def test_fallback_without_refs_gives_no_jobs(self):
        assert build_jobs("cartesian", prompts=["a", "b"], shared_refs=[]) == []

    @pytest.mark.parametrize(
        "groups",
        [
            [["A"]],
            [[], []],
            [["A", "B"], [], ["C"], []],
        ],
    )
    def test_text_only_count_matches_empty_groups(self, groups):
        prompts = ["a", "b", "c"]
        jobs = build_jobs("cartesian", prompts=prompts, per_prompt_groups=groups)

        empty_groups = sum(1 for g in groups if not g)
        assert len(jobs) == len(prompts) * len(groups)
        assert sum(1 for j in jobs if not j.refs) == len(prompts) * empty_groups


class TestEdgeCases:
    @pytest.mark.parametrize("mode", ["one-to-many", "zip", "cartesian"])
    def test_empty_prompts_give_no_jobs(self, mode):
        assert build_jobs(mode, shared_refs=["X"], prompts=[], per_prompt_groups=[["X"]]) == []

    def test_unknown_mode_gives_no_jobs(self):
        assert build_jobs("round-robin", shared_refs=["X"], prompts=PROMPTS) == []

    def test_malformed_inputs_degrade_to_empty(self):
        jobs = build_jobs("one-to-many", shared_refs="S1", prompts=PROMPTS, per_prompt_groups=42)

        assert len(jobs) == 3
        assert all(j.refs == () for j in jobs)

    def test_malformed_group_becomes_explicit_empty(self):
        jobs = build_jobs("cartesian", prompts=["a"], per_prompt_groups=["not-a-list", ["B"]])

        assert [j.refs for j in jobs] == [(), ("B",)]

    def test_build_is_idempotent(self):
        kwargs = dict(prompts=PROMPTS, per_prompt_groups=[["A"], [], ["B", "C"]])

        assert build_jobs("cartesian", **kwargs) == build_jobs("cartesian", **kwargs)

    def test_payload_is_copied_into_every_job(self):
        jobs = build_jobs("one-to-many", prompts=PROMPTS, extra_payload={"size": "512x512"})

        assert all(j.payload == GenerationParams(size="512x512") for j in jobs)

    def test_jobs_are_immutable(self):
        job = build_jobs("one-to-many", shared_refs=["S"], prompts=["p"])[0]

        with pytest.raises(ValidationError):
            job.prompt = "changed"


class TestNormalizeInputs:
    def test_counts_discarded_inputs(self):
        inputs = normalize_inputs(
            prompts=["a", 3, "b"],
            shared_refs=["S1", "", None],
            per_prompt_groups=[["A", 1], "bad", []],
            extra_payload={"size": "huge"},
        )

        assert inputs.prompts == ["a", "b"]
        assert inputs.shared_refs == ["S1"]
        assert inputs.groups == [["A"], [], []]
        assert inputs.payload == GenerationParams()
        assert inputs.discarded.prompts == 1
        assert inputs.discarded.shared_refs == 2
        assert inputs.discarded.groups == 1
        assert inputs.discarded.group_entries == 1
        assert inputs.discarded.payload == 1
        assert inputs.discarded.total == 6

    def test_missing_inputs_are_not_counted(self):
        inputs = normalize_inputs()

        assert inputs.discarded.total == 0
        assert inputs.prompts == []

    def test_non_list_inputs_are_counted(self):
        inputs = normalize_inputs(prompts="p1", shared_refs={"a": 1}, per_prompt_groups="g")

        assert inputs.discarded.prompts == 1
        assert inputs.discarded.shared_refs == 1
        assert inputs.discarded.groups == 1
        assert inputs.groups == []
