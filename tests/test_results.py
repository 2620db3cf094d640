"""Tests for parsing ansible output and rendering reports."""

import json

import pytest

from conftest import ansible_output
from lurch.errors import MalformedOutputError, ToolFailure
from lurch.orchestrator import reports
from lurch.orchestrator.models import HostStats, parse_results


class TestParseResults:
    def test_parses_plays_tasks_and_stats(self):
        raw = json.dumps(ansible_output(
            {"web1": {"ok": 3, "changed": 1, "skipped": 2, "failures": 1}},
            failures={"web1": [("install packages", "apt failed")]},
        ))

        result = parse_results(raw)

        assert [play.name for play in result.plays] == ["site"]
        assert [task.name for task in result.plays[0].tasks] == ["gathering facts", "install packages"]
        assert result.plays[0].tasks[1].hosts["web1"].failed is True
        assert result.plays[0].tasks[1].hosts["web1"].message == "apt failed"
        assert result.stats["web1"] == HostStats(ok=3, changed=1, skipped=2, failed=1)

    def test_unreachable_hosts_count_as_failed(self):
        raw = json.dumps({
            "plays": [{"play": {"name": "site"}, "tasks": [
                {"task": {"name": "ping"}, "hosts": {"db1": {"unreachable": True, "msg": "timed out"}}},
            ]}],
            "stats": {"db1": {"ok": 0, "changed": 0, "skipped": 0, "unreachable": 1}},
        })

        assert parse_results(raw).failed_hosts() == ["db1"]

    def test_structured_messages_are_rendered_as_json(self):
        raw = json.dumps({
            "plays": [{"play": {"name": "p"}, "tasks": [
                {"task": {"name": "t"}, "hosts": {"h": {"failed": True, "msg": ["a", "b"]}}},
            ]}],
            "stats": {},
        })

        message = parse_results(raw).plays[0].tasks[0].hosts["h"].message
        assert json.loads(message) == ["a", "b"]

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "PLAY [all] ***",
            "[1, 2, 3]",
            '{"plays": {"not": "a list"}, "stats": {}}',
            '{"plays": [], "stats": {"h": {"ok": "many"}}}',
            '{"plays": ["nope"], "stats": {}}',
        ],
    )
    def test_rejects_unexpected_output(self, raw):
        with pytest.raises(MalformedOutputError):
            parse_results(raw)

    def test_raise_for_status(self):
        result = parse_results(json.dumps(ansible_output(
            {"web1": {"ok": 1}}, failures={"web1": [("boom", "bad")]}
        )))

        result.raise_for_status(0)
        with pytest.raises(ToolFailure) as excinfo:
            result.raise_for_status(2)
        assert excinfo.value.exit_code == 2
        assert excinfo.value.result is result
        assert "web1" in str(excinfo.value)

    @pytest.mark.parametrize("plays,hosts", [(0, 0), (1, 1), (3, 2), (5, 7)])
    def test_per_host_counts_sum_to_totals(self, plays, hosts):
        stats = {
            f"host{h}": {"ok": h + 1, "changed": h % 3, "skipped": h * 2, "failures": h % 2}
            for h in range(hosts)
        }
        payload = ansible_output(stats)
        payload["plays"] = payload["plays"] * plays

        result = parse_results(json.dumps(payload))
        totals = result.totals()

        assert totals.ok == sum(v["ok"] for v in stats.values())
        assert totals.changed == sum(v["changed"] for v in stats.values())
        assert totals.skipped == sum(v["skipped"] for v in stats.values())
        assert totals.failed == sum(v["failures"] for v in stats.values())
        assert len(result.plays) == plays
        if hosts > 1:
            changed = sum(v["changed"] for v in stats.values())
            report = reports.success_report("web", "api", result)
            assert f"Across all hosts: {changed} changed, {totals.ok} unchanged" in report


class TestFailureGrouping:
    def test_failures_sorted_by_play_and_host(self):
        raw = json.dumps({
            "plays": [
                {"play": {"name": "zeta"}, "tasks": [
                    {"task": {"name": "z1"}, "hosts": {"b": {"failed": True, "msg": "x"}, "a": {"failed": True, "msg": "y"}}},
                ]},
                {"play": {"name": "alpha"}, "tasks": [
                    {"task": {"name": "a1"}, "hosts": {"c": {"failed": True, "msg": "z"}, "d": {"failed": False}}},
                ]},
            ],
            "stats": {},
        })

        failures = parse_results(raw).failures()

        assert list(failures) == ["alpha", "zeta"]
        assert list(failures["zeta"]) == ["a", "b"]
        assert "d" not in failures["alpha"]


class TestReports:
    def test_single_host_without_changes(self):
        result = parse_results(json.dumps(ansible_output({"web1": {"ok": 3, "changed": 0, "skipped": 0}})))

        report = reports.success_report("web", "api", result)

        assert report == "All *web api* tasks ran ok on the *web1* host with no changes reported."

    def test_single_host_with_changes(self):
        result = parse_results(json.dumps(ansible_output({"web1": {"ok": 3, "changed": 2, "skipped": 1}})))

        report = reports.success_report("web", "api", result)

        assert report.endswith("on the *web1* host with 2 changed, 3 unchanged and 1 skipped.")

    def test_several_hosts_are_listed(self):
        result = parse_results(json.dumps(ansible_output({
            "web2": {"ok": 1, "changed": 1},
            "web1": {"ok": 4},
        })))

        report = reports.success_report("web", "api", result)

        assert report.startswith("All *web api* tasks ran ok on the following 2 hosts:")
        assert report.index("*web1*: no changes reported.") < report.index("*web2*: 1 changed")
        assert report.endswith("\nAcross all hosts: 1 changed, 5 unchanged and 0 skipped.")

    def test_no_hosts(self):
        result = parse_results('{"plays": [], "stats": {}}')
        assert "no hosts were reported" in reports.success_report("web", "api", result)

    def test_failure_entries_number_tasks_and_quote_messages(self):
        result = parse_results(json.dumps(ansible_output(
            {"web1": {"ok": 1, "failures": 2}},
            failures={"web1": [("install packages", "line one\nline two"), ("start service", "nope")]},
        )))

        entries = reports.failure_entries(result)

        assert entries == [
            "The *web1* host has 2 tasks failing:\n*1. Install packages* returned this error:\n>line one\n>line two",
            "*2. Start service* returned this error:\n>nope",
        ]

    def test_reproduction_command_quotes_arguments(self):
        text = reports.reproduction_command(
            "example/devops:latest",
            ["ansible-playbook", "--extra-vars", "msg=hello world", "site.yml"],
        )

        assert "docker pull example/devops:latest && \\\n" in text
        assert "docker run -t --rm example/devops:latest ansible-playbook --extra-vars 'msg=hello world' site.yml" in text


class TestChunking:
    def test_everything_fits_in_one_message(self):
        assert reports.chunk_messages("header", ["one", "two"], 100) == ["header\none\ntwo"]

    def test_flushes_before_exceeding_limit_and_never_splits_entries(self):
        entries = [f"*{i}. task* returned this error:\n>" + "x" * 30 for i in range(1, 10)]
        header = "I'm sorry, *deploy* failed on *web api*:"

        messages = reports.chunk_messages(header, entries, 120)

        assert len(messages) > 1
        assert all(len(message) <= 120 for message in messages)
        assert messages[0].startswith(header)
        # Every entry arrives whole, in order.
        rebuilt = "\n".join(messages)
        assert rebuilt == "\n".join([header] + entries)
        for entry in entries:
            assert any(entry in message for message in messages)

    def test_flush_happens_exactly_at_the_boundary(self):
        # "aaaa\nbbbb" is 9 characters: fits a limit of 9 but not 8.
        assert reports.chunk_messages("aaaa", ["bbbb"], 9) == ["aaaa\nbbbb"]
        assert reports.chunk_messages("aaaa", ["bbbb"], 8) == ["aaaa", "bbbb"]

    def test_oversized_entry_is_truncated_to_the_limit(self):
        messages = reports.chunk_messages("header", ["y" * 500], 100)

        assert messages[0] == "header"
        assert len(messages[1]) == 100
        assert messages[1].endswith("(truncated)")

    def test_tiny_limit_still_respected(self):
        messages = reports.chunk_messages("header", ["y" * 50], 5)

        assert all(len(message) <= 5 for message in messages)

    def test_host_heading_stays_with_its_first_task(self):
        result = parse_results(json.dumps(ansible_output(
            {"db1": {"failures": 1}}, failures={"db1": [("install", "e" * 40)]},
        )))
        header = reports.failure_header("deploy", "solo", "db")

        messages = reports.chunk_messages(header, reports.failure_entries(result), 120)

        assert messages[0] == header
        assert messages[1].startswith("The *db1* host has 1 task failing:\n*1. Install* returned this error:")


class TestOutputMessages:
    def test_short_output_shares_the_header_message(self):
        assert reports.output_messages("Failed:", "ERROR! no playbook", 100) == ["Failed:\n>>>ERROR! no playbook"]

    def test_error_after_long_output_is_kept(self):
        output = "x" * 5000 + "\n" + "ERROR! the real cause"

        messages = reports.output_messages("Failed:", output, 500)

        assert all(len(message) <= 500 for message in messages)
        assert messages[0].startswith("Failed:")
        assert any("ERROR! the real cause" in message for message in messages)
        assert all(message.startswith((">>>", "Failed:")) for message in messages)

    def test_many_lines_are_spread_over_messages(self):
        output = "\n".join(f"line {i}" for i in range(200))

        messages = reports.output_messages("Failed:", output, 300)

        assert len(messages) > 1
        assert all(len(message) <= 300 for message in messages)
        quoted = "\n".join(message.split(">>>", 1)[1] for message in messages)
        assert quoted == output

    def test_empty_output(self):
        assert reports.output_messages("Failed:", "", 100) == ["Failed:\n>>>"]
