"""Tests for AI suggestion parsing and the HTTP client (requests mocked)."""
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from planboard.errors import SuggestionError
from planboard.schema import TaskCategory, TaskPriority
from planboard.suggestions import SuggestionClient, parse_suggestions


ENVELOPE = {
    "success": True,
    "data": {
        "name": "Q3 Launch",
        "description": "Ship the new product line",
        "tasks": [
            {
                "title": "Press release",
                "description": "Announce the launch",
                "priority": "HIGH",
                "category": "CONTENT",
                "startDate": "2026-07-01",
                "dueDate": "2026-07-15T00:00:00.000Z",
                "subtasks": [{"title": "Draft"}, "Review"],
            },
            {"title": "Launch party", "category": "karaoke", "priority": "whenever", "dueDate": "soon"},
            {"description": "no title here"},
            "not a dict",
        ],
    },
}


class TestParseSuggestions:

    def test_envelope(self):
        tasks = parse_suggestions(ENVELOPE)
        assert [t.title for t in tasks] == ["Press release", "Launch party"]

        first = tasks[0]
        assert first.priority == TaskPriority.HIGH
        assert first.category == TaskCategory.CONTENT
        assert first.start_date == date(2026, 7, 1)
        assert first.due_date == date(2026, 7, 15)
        assert first.subtasks == [("Draft", ""), ("Review", "")]

    def test_unknown_values_fall_back(self):
        party = parse_suggestions(ENVELOPE)[1]
        assert party.category == TaskCategory.OTHER
        assert party.priority == TaskPriority.MEDIUM
        assert party.due_date is None

    def test_fenced_json_string(self):
        text = '```json\n{"tasks": [{"title": "Book venue", "category": "event"}]}\n```'
        tasks = parse_suggestions(text)
        assert [t.title for t in tasks] == ["Book venue"]
        assert tasks[0].category == TaskCategory.EVENT

    def test_json_embedded_in_prose(self):
        text = 'Here is your plan:\n[{"title": "Kickoff meeting", "category": "meeting"}]\nGood luck!'
        assert parse_suggestions(text)[0].title == "Kickoff meeting"

    def test_bare_list_and_bytes(self):
        assert parse_suggestions([{"title": "A"}])[0].title == "A"
        assert parse_suggestions(b'[{"title": "B"}]')[0].title == "B"

    def test_failure_envelope(self):
        with pytest.raises(SuggestionError, match="quota"):
            parse_suggestions({"success": False, "error": "quota exceeded"})

    def test_garbage(self):
        with pytest.raises(SuggestionError):
            parse_suggestions("I could not come up with anything")
        with pytest.raises(SuggestionError):
            parse_suggestions({"data": {"name": "no tasks"}})

    def test_task_fields(self):
        fields = parse_suggestions(ENVELOPE)[0].task_fields()
        assert fields["description"] == "Announce the launch"
        assert set(fields) == {"description", "category", "priority", "start_date", "due_date"}


class TestSuggestionClient:

    def _response(self, payload, status=200):
        r = MagicMock()
        r.ok = status < 400
        r.status_code = status
        r.json.return_value = payload
        return r

    def test_generate_posts_goal(self):
        session = MagicMock()
        session.post.return_value = self._response(ENVELOPE)
        client = SuggestionClient("http://ai.local/api/ai", timeout=5, session=session)

        tasks = client.generate("Launch Q3", duration="3 months", start_date=date(2026, 7, 1))

        assert len(tasks) == 2
        args, kwargs = session.post.call_args
        assert args[0] == "http://ai.local/api/ai"
        assert kwargs["timeout"] == 5
        assert kwargs["json"] == {
            "type": "generate",
            "prompt": "Launch Q3",
            "context": {"goal": "Launch Q3", "duration": "3 months", "startDate": "2026-07-01"},
        }

    def test_http_error(self):
        session = MagicMock()
        session.post.return_value = self._response({}, status=502)
        with pytest.raises(SuggestionError, match="502"):
            SuggestionClient("http://ai.local", session=session).generate("goal")

    def test_connection_error(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(SuggestionError, match="refused"):
            SuggestionClient("http://ai.local", session=session).generate("goal")

    def test_non_json_body_is_parsed_as_text(self):
        session = MagicMock()
        r = self._response(None)
        r.json.side_effect = ValueError("no json")
        r.text = '```json\n[{"title": "Fallback"}]\n```'
        session.post.return_value = r
        tasks = SuggestionClient("http://ai.local", session=session).generate("goal")
        assert tasks[0].title == "Fallback"

    @patch("planboard.suggestions.requests.Session")
    def test_default_session(self, mock_session):
        mock_session.return_value.post.return_value = self._response({"tasks": []})
        assert SuggestionClient("http://ai.local").generate("goal") == []
        mock_session.return_value.post.assert_called_once()
