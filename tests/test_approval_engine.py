"""
Approval engine — end-to-end tests through the HTTP API (tickets).

Tests cover:
  - Initialize preconditions and effects
  - ALL / ANY node policies, fail-fast rejection
  - Advancing across sparse node_order values, final approval
  - Terminal records refuse further votes
  - Authorization of voters, stale-node votes
  - Leftover votes are superseded and never resurface in queues
  - Stalled advance onto a node with no approvers
  - Approver and policy edits on a node with paused records
  - Re-initialisation opens a new run; earlier runs stay in the history
  - Deleting a node keeps the decisions recorded at it
  - Read-only approvals endpoint is idempotent
"""

import logging

import pytest

from app.models.approval import ApprovalVote


def _init(client, ticket_id, workflow_id):
    return client.post(f"/api/v1/tickets/{ticket_id}/workflow", json={"workflow_id": workflow_id})


def _vote(client, ticket_id, user_id, action="APPROVE", **extra):
    return client.post(
        f"/api/v1/tickets/{ticket_id}/approve",
        json={"user_id": user_id, "action": action, **extra},
    )


def _approvals(client, ticket_id):
    res = client.get(f"/api/v1/tickets/{ticket_id}/approvals")
    assert res.status_code == 200
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# END-TO-END
# ═════════════════════════════════════════════════════════════════════════


class TestPurchaseApprovalScenario:
    def test_full_run_ends_in_rejection(self, client, approvers, ticket, make_workflow):
        a, b, c = approvers
        wf, nodes = make_workflow(
            "Purchase Approval",
            [("Manager Review", "ALL", [a, b]), ("Finance", "ANY", [c])],
        )

        res = _init(client, ticket["id"], wf["id"])
        assert res.status_code == 200
        data = res.get_json()
        assert data["ticket"]["current_node_order"] == 1
        assert data["ticket"]["approval_status"] == "PENDING"
        assert data["current_node"]["id"] == nodes[0]["id"]
        assert len(data["pending_approvals"]) == 2
        assert {v["status"] for v in data["pending_approvals"]} == {"PENDING"}

        res = _vote(client, ticket["id"], a)
        assert res.status_code == 200
        data = res.get_json()
        assert data["approval_recorded"] is True
        assert data["node_status"]["is_complete"] is False
        assert data["node_status"]["pending"] == 1
        assert data["message"] == "Approval recorded. Waiting for 1 more approval(s)"
        assert "moved_to_next_node" not in data

        res = _vote(client, ticket["id"], b)
        data = res.get_json()
        assert data["node_status"]["node_status"] == "APPROVED"
        assert data["moved_to_next_node"] is True
        assert data["next_node"]["name"] == "Finance"
        assert data["message"] == "Moved to next approval stage: Finance"
        assert data["ticket"]["current_node_order"] == 2
        assert data["ticket"]["approval_status"] == "PENDING"

        status = _approvals(client, ticket["id"])
        assert status["current_node"]["id"] == nodes[1]["id"]
        assert status["current_node"]["status"]["pending"] == 1
        finance_votes = [v for v in status["all_approvals"] if v["node_id"] == nodes[1]["id"]]
        assert [(v["user_id"], v["status"]) for v in finance_votes] == [(c, "PENDING")]

        res = _vote(client, ticket["id"], c, "REJECT", comments="Over budget")
        data = res.get_json()
        assert data["node_status"]["node_status"] == "REJECTED"
        assert data["ticket_status"] == "REJECTED"
        assert data["message"] == "Ticket has been rejected"
        assert data["ticket"]["approval_status"] == "REJECTED"

        history = _approvals(client, ticket["id"])["approval_history"]
        assert [(v["user_id"], v["status"]) for v in history] == [
            (a, "APPROVED"), (b, "APPROVED"), (c, "REJECTED"),
        ]
        assert history[-1]["comments"] == "Over budget"


# ═════════════════════════════════════════════════════════════════════════
# INITIALIZE
# ═════════════════════════════════════════════════════════════════════════


class TestInitialize:
    def test_requires_workflow_id(self, client, ticket):
        res = client.post(f"/api/v1/tickets/{ticket['id']}/workflow", json={})
        assert res.status_code == 400
        assert res.get_json()["error"] == "workflow_id is required"

    def test_unknown_workflow(self, client, ticket):
        res = _init(client, ticket["id"], 9999)
        assert res.status_code == 404
        assert res.get_json()["error"] == "Workflow not found"

    def test_inactive_workflow(self, client, approvers, ticket, make_workflow):
        wf, _ = make_workflow("Dormant", [("Only", "ALL", approvers[:1])], is_active=False)
        res = _init(client, ticket["id"], wf["id"])
        assert res.status_code == 400
        assert res.get_json()["error"] == "Workflow is not active"

    def test_workflow_without_nodes(self, client, ticket, make_workflow):
        wf, _ = make_workflow("Empty", [])
        res = _init(client, ticket["id"], wf["id"])
        assert res.status_code == 400
        assert res.get_json()["error"] == "Workflow has no nodes"

    def test_first_node_without_approvers_leaves_record_untouched(
        self, client, approvers, ticket, make_workflow,
    ):
        wf, _ = make_workflow("Headless", [("Nobody", "ALL", []), ("Later", "ALL", approvers[:1])])
        res = _init(client, ticket["id"], wf["id"])
        assert res.status_code == 400
        assert res.get_json()["error"] == "First node has no assigned users"

        t = client.get(f"/api/v1/tickets/{ticket['id']}").get_json()
        assert t["workflow_id"] is None
        assert t["approval_status"] == "NOT_REQUIRED"
        assert ApprovalVote.query.count() == 0

    def test_unknown_ticket(self, client, approvers, make_workflow):
        wf, _ = make_workflow("WF", [("Only", "ALL", approvers[:1])])
        res = _init(client, 4242, wf["id"])
        assert res.status_code == 404
        assert res.get_json()["error"] == "Ticket not found"

    def test_first_node_is_minimum_order(self, client, approvers, ticket):
        a, b, c = approvers
        wf = client.post("/api/v1/workflows", json={"name": "Sparse"}).get_json()
        client.post(f"/api/v1/workflows/{wf['id']}/nodes",
                    json={"name": "Second", "node_order": 20, "user_ids": [c]})
        first = client.post(f"/api/v1/workflows/{wf['id']}/nodes",
                            json={"name": "First", "node_order": 5, "user_ids": [a, b]}).get_json()

        data = _init(client, ticket["id"], wf["id"]).get_json()
        assert data["ticket"]["current_node_order"] == 5
        assert data["current_node"]["id"] == first["id"]
        assert sorted(v["user_id"] for v in data["pending_approvals"]) == [a, b]

    def test_refuses_reinitialize_while_pending(self, client, approvers, ticket, make_workflow):
        wf, _ = make_workflow("WF", [("Only", "ALL", approvers[:1])])
        assert _init(client, ticket["id"], wf["id"]).status_code == 200
        res = _init(client, ticket["id"], wf["id"])
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_PRECONDITION"

    def test_reinitialize_after_terminal_starts_fresh_run(
        self, client, approvers, ticket, make_workflow,
    ):
        a, b, c = approvers
        wf, nodes = make_workflow("WF", [("Only", "ALL", [a, b])])
        _init(client, ticket["id"], wf["id"])
        assert _vote(client, ticket["id"], a, "REJECT").get_json()["ticket_status"] == "REJECTED"

        # approver set changes between runs: B stays, A leaves, C joins
        client.put(f"/api/v1/nodes/{nodes[0]['id']}/users", json={"user_ids": [b, c]})

        data = _init(client, ticket["id"], wf["id"]).get_json()
        assert data["ticket"]["approval_status"] == "PENDING"
        assert data["ticket"]["approval_run"] == 2
        assert sorted((v["user_id"], v["status"], v["run_number"]) for v in data["pending_approvals"]) == [
            (b, "PENDING", 2), (c, "PENDING", 2),
        ]

        # run 1's rows are not reused: B's superseded row stays superseded
        status = _approvals(client, ticket["id"])
        assert status["current_node"]["status"]["total"] == 2
        assert status["current_node"]["status"]["pending"] == 2
        assert {v["run_number"] for v in status["all_approvals"]} == {2}

        _vote(client, ticket["id"], b)
        res = _vote(client, ticket["id"], c)
        assert res.get_json()["ticket_status"] == "APPROVED"

        history = [
            (v["run_number"], v["user_id"], v["status"])
            for v in _approvals(client, ticket["id"])["approval_history"]
        ]
        assert history == [(1, a, "REJECTED"), (2, b, "APPROVED"), (2, c, "APPROVED")]
        run_one = ApprovalVote.query.filter_by(subject_id=ticket["id"], run_number=1).all()
        assert {(v.user_id, v.status) for v in run_one} == {(a, "REJECTED"), (b, "SUPERSEDED")}


# ═════════════════════════════════════════════════════════════════════════
# POLICIES & TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════


class TestPolicies:
    def test_all_policy_rejects_on_first_reject(self, client, approvers, ticket, make_workflow):
        a, b, c = approvers
        wf, nodes = make_workflow("Unanimous", [("Board", "ALL", [a, b, c])])
        _init(client, ticket["id"], wf["id"])

        assert _vote(client, ticket["id"], a).get_json()["node_status"]["pending"] == 2
        data = _vote(client, ticket["id"], b, "REJECT").get_json()
        assert data["node_status"]["is_complete"] is True
        assert data["ticket_status"] == "REJECTED"

        # C's untouched vote is closed, not left PENDING
        votes = {v["user_id"]: v["status"] for v in _approvals(client, ticket["id"])["all_approvals"]}
        assert votes == {a: "APPROVED", b: "REJECTED", c: "SUPERSEDED"}

    def test_any_policy_approves_on_first_approval(self, client, approvers, ticket, make_workflow):
        a, b, _ = approvers
        wf, _ = make_workflow("Either", [("Desk", "ANY", [a, b])])
        _init(client, ticket["id"], wf["id"])

        data = _vote(client, ticket["id"], a).get_json()
        assert data["node_status"]["node_status"] == "APPROVED"
        assert data["ticket_status"] == "APPROVED"
        assert data["message"] == "Ticket has been fully approved"

    def test_any_policy_rejects_on_first_rejection(self, client, approvers, ticket, make_workflow):
        a, b, _ = approvers
        wf, _ = make_workflow("Either", [("Desk", "ANY", [a, b]), ("Next", "ALL", [a])])
        _init(client, ticket["id"], wf["id"])

        data = _vote(client, ticket["id"], b, "REJECT").get_json()
        assert data["ticket_status"] == "REJECTED"
        assert "moved_to_next_node" not in data

    def test_advances_across_order_gaps(self, client, approvers, ticket):
        a, b, _ = approvers
        wf = client.post("/api/v1/workflows", json={"name": "Gaps"}).get_json()
        client.post(f"/api/v1/workflows/{wf['id']}/nodes",
                    json={"name": "Ten", "node_order": 10, "user_ids": [a]})
        client.post(f"/api/v1/workflows/{wf['id']}/nodes",
                    json={"name": "Thirty", "node_order": 30, "user_ids": [b]})
        _init(client, ticket["id"], wf["id"])

        data = _vote(client, ticket["id"], a).get_json()
        assert data["next_node"]["name"] == "Thirty"
        assert data["ticket"]["current_node_order"] == 30

        data = _vote(client, ticket["id"], b).get_json()
        assert data["ticket_status"] == "APPROVED"

    def test_final_approval_creates_no_more_votes(self, client, approvers, ticket, make_workflow):
        a, b, _ = approvers
        wf, _ = make_workflow("Two step", [("One", "ANY", [a]), ("Two", "ANY", [b])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], a)
        before = ApprovalVote.query.count()

        data = _vote(client, ticket["id"], b).get_json()
        assert data["ticket_status"] == "APPROVED"
        assert ApprovalVote.query.count() == before

    def test_revote_overwrites_previous_decision(self, client, approvers, ticket, make_workflow):
        a, b, _ = approvers
        wf, _ = make_workflow("WF", [("Pair", "ALL", [a, b])])
        _init(client, ticket["id"], wf["id"])

        _vote(client, ticket["id"], a, comments="first")
        data = _vote(client, ticket["id"], a, comments="second").get_json()
        assert data["node_status"]["pending"] == 1
        assert data["node_status"]["approved"] == 1

        rows = [v for v in _approvals(client, ticket["id"])["all_approvals"] if v["user_id"] == a]
        assert len(rows) == 1
        assert rows[0]["comments"] == "second"

    def test_action_is_case_insensitive(self, client, approvers, ticket, make_workflow):
        wf, _ = make_workflow("WF", [("Only", "ANY", approvers[:1])])
        _init(client, ticket["id"], wf["id"])
        res = _vote(client, ticket["id"], approvers[0], "approve")
        assert res.get_json()["ticket_status"] == "APPROVED"


# ═════════════════════════════════════════════════════════════════════════
# VOTE GUARDS
# ═════════════════════════════════════════════════════════════════════════


class TestVoteGuards:
    @pytest.fixture()
    def running(self, client, approvers, ticket, make_workflow):
        a, b, c = approvers
        wf, nodes = make_workflow("Guarded", [("First", "ALL", [a, b]), ("Second", "ANY", [c])])
        _init(client, ticket["id"], wf["id"])
        return wf, nodes

    def test_invalid_action(self, client, approvers, ticket, running):
        res = _vote(client, ticket["id"], approvers[0], "MAYBE")
        assert res.status_code == 400
        assert res.get_json()["error"] == "action must be APPROVE or REJECT"

    def test_missing_user_id(self, client, ticket, running):
        res = client.post(f"/api/v1/tickets/{ticket['id']}/approve", json={"action": "APPROVE"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "user_id is required"

    def test_unknown_voter_is_not_found(self, client, ticket, running):
        res = _vote(client, ticket["id"], 9999)
        assert res.status_code == 404
        assert res.get_json()["error"] == "User not found"

    def test_no_workflow_attached(self, client, approvers):
        t = client.post("/api/v1/tickets", json={"title": "Bare"}).get_json()
        res = _vote(client, t["id"], approvers[0])
        assert res.status_code == 400
        assert res.get_json()["error"] == "Ticket has no workflow assigned"

    def test_unassigned_user_is_forbidden_and_ledger_unchanged(
        self, client, approvers, ticket, running,
    ):
        before = _approvals(client, ticket["id"])["all_approvals"]
        res = _vote(client, ticket["id"], approvers[2])  # C belongs to node two only
        assert res.status_code == 403
        assert res.get_json()["error"] == "You are not authorized to approve this ticket at current stage"
        assert _approvals(client, ticket["id"])["all_approvals"] == before

    def test_terminal_record_refuses_votes(self, client, approvers, ticket, running):
        a, b, _ = approvers
        _vote(client, ticket["id"], a, "REJECT")
        res = _vote(client, ticket["id"], b)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Ticket is already REJECTED"
        assert res.get_json()["code"] == "ERR_PRECONDITION"

    def test_stale_node_vote_is_refused(self, client, approvers, ticket, running):
        a, b, c = approvers
        _, nodes = running
        _vote(client, ticket["id"], a)
        _vote(client, ticket["id"], b)

        res = _vote(client, ticket["id"], c, node_id=nodes[0]["id"])
        assert res.status_code == 400
        assert res.get_json()["details"]["current_node_id"] == nodes[1]["id"]

        res = _vote(client, ticket["id"], c, node_id=nodes[1]["id"])
        assert res.status_code == 200


# ═════════════════════════════════════════════════════════════════════════
# STALLED ADVANCE
# ═════════════════════════════════════════════════════════════════════════


class TestStalledNode:
    def test_advance_to_empty_node_stalls_until_approver_assigned(
        self, client, approvers, ticket, make_workflow,
    ):
        a, _, c = approvers
        wf, nodes = make_workflow("Stall", [("Review", "ANY", [a]), ("Empty", "ALL", [])])
        _init(client, ticket["id"], wf["id"])

        data = _vote(client, ticket["id"], a).get_json()
        assert data["moved_to_next_node"] is True
        assert data["ticket"]["approval_status"] == "PENDING"

        status = _approvals(client, ticket["id"])
        assert status["current_node"]["id"] == nodes[1]["id"]
        assert status["current_node"]["status"]["total"] == 0
        assert status["current_node"]["status"]["is_complete"] is False

        assert _vote(client, ticket["id"], c).status_code == 403

        client.put(f"/api/v1/nodes/{nodes[1]['id']}/users", json={"user_ids": [c]})
        data = _vote(client, ticket["id"], c).get_json()
        assert data["ticket_status"] == "APPROVED"


# ═════════════════════════════════════════════════════════════════════════
# APPROVER CHANGES MID-NODE
# ═════════════════════════════════════════════════════════════════════════


def _queue(client, uid):
    res = client.get(f"/api/v1/approvals/pending?userId={uid}")
    assert res.status_code == 200
    return [item["id"] for item in res.get_json()["items"]]


class TestApproverChangesMidNode:
    def test_added_approver_must_vote_under_all(self, client, approvers, ticket, make_workflow):
        a, b, c = approvers
        wf, nodes = make_workflow("Board", [("Board", "ALL", [a, b])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], a)

        res = client.post(f"/api/v1/nodes/{nodes[0]['id']}/users", json={"user_ids": [c]})
        assert res.status_code == 201
        assert _queue(client, c) == [ticket["id"]]

        data = _vote(client, ticket["id"], b).get_json()
        assert data["node_status"]["total"] == 3
        assert data["node_status"]["pending"] == 1
        assert data["ticket"]["approval_status"] == "PENDING"

        data = _vote(client, ticket["id"], c).get_json()
        assert data["ticket_status"] == "APPROVED"

    def test_removing_last_pending_approver_settles_node(
        self, client, approvers, ticket, make_workflow,
    ):
        a, b, c = approvers
        wf, nodes = make_workflow("Two", [("Pair", "ALL", [a, b]), ("Final", "ANY", [c])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], a)

        res = client.delete(f"/api/v1/nodes/{nodes[0]['id']}/users/{b}")
        assert res.status_code == 200

        status = _approvals(client, ticket["id"])
        assert status["ticket"]["current_node_order"] == nodes[1]["node_order"]
        assert status["current_node"]["id"] == nodes[1]["id"]
        votes = {(v["node_id"], v["user_id"]): v["status"] for v in status["all_approvals"]}
        assert votes == {
            (nodes[0]["id"], a): "APPROVED",
            (nodes[0]["id"], b): "SUPERSEDED",
            (nodes[1]["id"], c): "PENDING",
        }
        assert _queue(client, b) == []
        assert _queue(client, c) == [ticket["id"]]

    def test_removed_approver_cannot_vote(self, client, approvers, ticket, make_workflow):
        a, b, c = approvers
        wf, nodes = make_workflow("Board", [("Board", "ALL", [a, b, c])])
        _init(client, ticket["id"], wf["id"])

        client.delete(f"/api/v1/nodes/{nodes[0]['id']}/users/{c}")
        assert _vote(client, ticket["id"], c).status_code == 403

        _vote(client, ticket["id"], a)
        data = _vote(client, ticket["id"], b).get_json()
        assert data["ticket_status"] == "APPROVED"

    def test_removed_voter_decision_no_longer_counts(self, client, approvers, ticket, make_workflow):
        a, b, c = approvers
        wf, nodes = make_workflow("Board", [("Board", "ALL", [a, b, c])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], a)

        client.put(f"/api/v1/nodes/{nodes[0]['id']}/users", json={"user_ids": [b, c]})
        status = _approvals(client, ticket["id"])["current_node"]["status"]
        assert status["total"] == 2
        assert status["approved"] == 0
        assert status["pending"] == 2

    def test_switching_policy_to_any_settles_paused_record(
        self, client, approvers, ticket, make_workflow,
    ):
        a, b, _ = approvers
        wf, nodes = make_workflow("Board", [("Board", "ALL", [a, b])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], a)

        res = client.put(
            f"/api/v1/workflows/{wf['id']}/nodes/{nodes[0]['id']}", json={"approval_type": "ANY"},
        )
        assert res.status_code == 200

        status = _approvals(client, ticket["id"])
        assert status["ticket"]["approval_status"] == "APPROVED"
        votes = {v["user_id"]: v["status"] for v in status["all_approvals"]}
        assert votes == {a: "APPROVED", b: "SUPERSEDED"}
        assert _queue(client, b) == []

    def test_emptying_a_node_stalls_record(self, client, approvers, ticket, make_workflow):
        a, b, _ = approvers
        wf, nodes = make_workflow("Board", [("Board", "ANY", [a, b])])
        _init(client, ticket["id"], wf["id"])

        client.put(f"/api/v1/nodes/{nodes[0]['id']}/users", json={"user_ids": []})
        status = _approvals(client, ticket["id"])
        assert status["ticket"]["approval_status"] == "PENDING"
        assert status["current_node"]["status"]["total"] == 0
        assert status["current_node"]["status"]["is_complete"] is False
        assert _queue(client, a) == []


# ═════════════════════════════════════════════════════════════════════════
# READS & QUEUES
# ═════════════════════════════════════════════════════════════════════════


class TestReadsAndQueues:
    def test_approvals_endpoint_is_idempotent(self, client, approvers, ticket, make_workflow):
        a, b, _ = approvers
        wf, _ = make_workflow("WF", [("Pair", "ALL", [a, b])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], a)

        first = _approvals(client, ticket["id"])
        second = _approvals(client, ticket["id"])
        assert first["all_approvals"] == second["all_approvals"]
        assert first["current_node"]["status"] == second["current_node"]["status"]
        assert first["ticket"] == {
            "id": ticket["id"],
            "workflow_id": wf["id"],
            "current_node_order": 1,
            "approval_status": "PENDING",
            "approval_run": 1,
        }

    def test_no_current_node_once_terminal(self, client, approvers, ticket, make_workflow):
        wf, _ = make_workflow("WF", [("Only", "ANY", approvers[:1])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], approvers[0])
        assert _approvals(client, ticket["id"])["current_node"] is None

    def test_pending_for_user_follows_current_node(self, client, approvers, ticket, make_workflow):
        a, b, c = approvers
        wf, _ = make_workflow("Queue", [("First", "ANY", [a, b]), ("Second", "ALL", [c])])
        _init(client, ticket["id"], wf["id"])

        def queue(uid):
            res = client.get(f"/api/v1/approvals/pending?userId={uid}")
            assert res.status_code == 200
            return [item["id"] for item in res.get_json()["items"]]

        assert queue(a) == [ticket["id"]]
        assert queue(b) == [ticket["id"]]
        assert queue(c) == []

        _vote(client, ticket["id"], a)
        # B's leftover vote at the passed node must not resurface
        assert queue(b) == []
        assert queue(c) == [ticket["id"]]

    def test_pending_requires_user(self, client):
        res = client.get("/api/v1/approvals/pending")
        assert res.status_code == 400
        assert res.get_json()["error"] == "userId is required"

    def test_pending_rejects_unknown_subject_type(self, client, approvers):
        res = client.get(f"/api/v1/approvals/pending?userId={approvers[0]}&subject_type=invoice")
        assert res.status_code == 400

    def test_ticket_pending_approval_list(self, client, approvers, make_workflow):
        a, b, _ = approvers
        wf, _ = make_workflow("Dash", [("Desk", "ALL", [a, b])])
        ids = []
        for title in ("One", "Two", "Three"):
            t = client.post("/api/v1/tickets", json={"title": title}).get_json()
            _init(client, t["id"], wf["id"])
            ids.append(t["id"])
        _vote(client, ids[0], a)

        res = client.get("/api/v1/tickets/pending-approval?limit=2")
        data = res.get_json()
        assert data["total"] == 3
        assert data["limit"] == 2
        assert len(data["items"]) == 2
        assert data["items"][0]["workflow_name"] == "Dash"
        assert data["items"][0]["current_node_name"] == "Desk"

        res = client.get(f"/api/v1/tickets/pending-approval?userId={a}")
        data = res.get_json()
        assert data["total"] == 2
        assert sorted(i["id"] for i in data["items"]) == sorted(ids[1:])

    def test_deleting_ticket_removes_its_votes(self, client, approvers, ticket, make_workflow):
        wf, _ = make_workflow("WF", [("Only", "ALL", approvers[:2])])
        _init(client, ticket["id"], wf["id"])
        assert ApprovalVote.query.count() == 2

        assert client.delete(f"/api/v1/tickets/{ticket['id']}").status_code == 200
        assert ApprovalVote.query.count() == 0

    def test_deleting_node_after_finished_run_keeps_history(
        self, client, approvers, ticket, make_workflow,
    ):
        a, b, _ = approvers
        wf, nodes = make_workflow("WF", [("First", "ANY", [a]), ("Second", "ANY", [b])])
        _init(client, ticket["id"], wf["id"])
        _vote(client, ticket["id"], a, comments="ok")
        assert _vote(client, ticket["id"], b).get_json()["ticket_status"] == "APPROVED"

        res = client.delete(f"/api/v1/workflows/{wf['id']}/nodes/{nodes[0]['id']}")
        assert res.status_code == 200

        history = _approvals(client, ticket["id"])["approval_history"]
        assert [(v["node_id"], v["node_name"], v["user_id"]) for v in history] == [
            (None, "First", a),
            (nodes[1]["id"], "Second", b),
        ]
        assert history[0]["comments"] == "ok"
        assert history[0]["node_order"] == nodes[0]["node_order"]

    def test_request_log_carries_subject_context(
        self, client, approvers, ticket, make_workflow, caplog,
    ):
        wf, _ = make_workflow("WF", [("Only", "ANY", approvers[:1])])
        _init(client, ticket["id"], wf["id"])

        caplog.set_level(logging.DEBUG, logger="app.middleware.timing")
        _approvals(client, ticket["id"])

        records = [r for r in caplog.records if r.name == "app.middleware.timing"]
        assert records
        assert records[-1].subject_type == "ticket"
        assert records[-1].subject_id == ticket["id"]
        assert records[-1].path == f"/api/v1/tickets/{ticket['id']}/approvals"
