"""
Reprint requests — CRUD plus the same approval engine as tickets.
"""


class TestReprintRequestCRUD:
    def test_create_defaults(self, client, reprint_request, ticket):
        assert reprint_request["ticket_id"] == ticket["id"]
        assert reprint_request["copies"] == 2
        assert reprint_request["status"] == "requested"
        assert reprint_request["approval_status"] == "NOT_REQUIRED"
        assert reprint_request["workflow_id"] is None

    def test_reason_required(self, client):
        res = client.post("/api/v1/reprint-requests", json={"copies": 1})
        assert res.status_code == 400
        assert res.get_json()["error"] == "reason is required"

    def test_copies_must_be_positive(self, client):
        res = client.post("/api/v1/reprint-requests", json={"reason": "x", "copies": 0})
        assert res.status_code == 400

    def test_unknown_ticket(self, client):
        res = client.post("/api/v1/reprint-requests", json={"reason": "x", "ticket_id": 999})
        assert res.status_code == 404
        assert res.get_json()["error"] == "Ticket not found"

    def test_list_filters_by_ticket(self, client, reprint_request, ticket):
        client.post("/api/v1/reprint-requests", json={"reason": "Unrelated"})
        data = client.get(f"/api/v1/reprint-requests?ticket_id={ticket['id']}").get_json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == reprint_request["id"]

    def test_pointer_fields_are_not_writable(self, client, reprint_request):
        res = client.put(
            f"/api/v1/reprint-requests/{reprint_request['id']}",
            json={"approval_status": "APPROVED", "copies": 5},
        )
        data = res.get_json()
        assert data["copies"] == 5
        assert data["approval_status"] == "NOT_REQUIRED"

    def test_get_missing(self, client):
        res = client.get("/api/v1/reprint-requests/404")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Reprint request not found"


class TestReprintRequestApproval:
    def test_two_stage_approval(self, client, approvers, reprint_request, make_workflow):
        a, b, c = approvers
        wf, nodes = make_workflow("Reprint", [("Desk", "ANY", [a, b]), ("Print shop", "ALL", [c])])
        rid = reprint_request["id"]

        res = client.post(f"/api/v1/reprint-requests/{rid}/workflow", json={"workflow_id": wf["id"]})
        assert res.status_code == 200
        data = res.get_json()
        assert data["reprint_request"]["approval_status"] == "PENDING"
        assert len(data["pending_approvals"]) == 2

        res = client.post(f"/api/v1/reprint-requests/{rid}/approve", json={"user_id": b, "action": "APPROVE"})
        data = res.get_json()
        assert data["moved_to_next_node"] is True
        assert data["reprint_request"]["current_node_order"] == 2

        res = client.post(f"/api/v1/reprint-requests/{rid}/approve", json={"user_id": c, "action": "APPROVE"})
        data = res.get_json()
        assert data["request_status"] == "APPROVED"
        assert data["message"] == "Reprint request has been fully approved"

        res = client.post(f"/api/v1/reprint-requests/{rid}/approve", json={"user_id": a, "action": "APPROVE"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Reprint request is already APPROVED"

    def test_unassigned_voter_message(self, client, approvers, reprint_request, make_workflow):
        a, _, c = approvers
        wf, _ = make_workflow("Reprint", [("Desk", "ALL", [a])])
        rid = reprint_request["id"]
        client.post(f"/api/v1/reprint-requests/{rid}/workflow", json={"workflow_id": wf["id"]})

        res = client.post(f"/api/v1/reprint-requests/{rid}/approve", json={"user_id": c, "action": "REJECT"})
        assert res.status_code == 403
        assert res.get_json()["error"] == "You are not authorized to approve this request at current stage"

    def test_votes_are_scoped_per_subject_type(self, client, approvers, ticket, reprint_request, make_workflow):
        """A ticket and a reprint request may share an id; their votes never mix."""
        a, b, _ = approvers
        wf, _ = make_workflow("Shared", [("Desk", "ALL", [a, b])])
        client.post(f"/api/v1/tickets/{ticket['id']}/workflow", json={"workflow_id": wf["id"]})
        client.post(
            f"/api/v1/reprint-requests/{reprint_request['id']}/workflow", json={"workflow_id": wf["id"]},
        )

        client.post(f"/api/v1/tickets/{ticket['id']}/approve", json={"user_id": a, "action": "APPROVE"})
        data = client.get(f"/api/v1/reprint-requests/{reprint_request['id']}/approvals").get_json()
        assert {v["status"] for v in data["all_approvals"]} == {"PENDING"}
        assert all(v["subject_type"] == "reprint_request" for v in data["all_approvals"])

    def test_pending_queue_spans_subject_types(self, client, approvers, ticket, reprint_request, make_workflow):
        a = approvers[0]
        wf, _ = make_workflow("Shared", [("Desk", "ANY", [a])])
        client.post(f"/api/v1/tickets/{ticket['id']}/workflow", json={"workflow_id": wf["id"]})
        client.post(
            f"/api/v1/reprint-requests/{reprint_request['id']}/workflow", json={"workflow_id": wf["id"]},
        )

        items = client.get(f"/api/v1/approvals/pending?userId={a}").get_json()["items"]
        assert sorted(i["subject_type"] for i in items) == ["reprint_request", "ticket"]

        items = client.get(
            f"/api/v1/approvals/pending?userId={a}&subject_type=reprint_request"
        ).get_json()["items"]
        assert [i["id"] for i in items] == [reprint_request["id"]]

    def test_printed_status_blocked_while_pending(self, client, approvers, reprint_request, make_workflow):
        wf, _ = make_workflow("Reprint", [("Desk", "ALL", approvers[:1])])
        rid = reprint_request["id"]
        client.post(f"/api/v1/reprint-requests/{rid}/workflow", json={"workflow_id": wf["id"]})
        res = client.put(f"/api/v1/reprint-requests/{rid}", json={"status": "printed"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_PRECONDITION"
