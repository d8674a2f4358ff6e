from jevehome.repositories.chat_repository import ChatRepository


def test_list_conversations_only_returns_own(client, db, family_user, make_user, auth_headers):
    mine = ChatRepository.create_conversation(db, family_user.id)
    ChatRepository.set_title(db, mine, "Honeymoon plans")
    other = make_user("family", email="cousin@example.com")
    ChatRepository.create_conversation(db, other.id)

    response = client.get("/api/agent/conversations", headers=auth_headers(family_user))

    assert response.status_code == 200
    data = response.json()
    assert [c["id"] for c in data] == [mine]
    assert data[0]["title"] == "Honeymoon plans"


def test_get_messages_in_order(client, db, family_user, auth_headers):
    conv = ChatRepository.create_conversation(db, family_user.id)
    ChatRepository.append_turn(db, conv, "user", "hi")
    ChatRepository.append_turn(db, conv, "assistant", "hello")

    response = client.get(f"/api/agent/conversations/{conv}/messages", headers=auth_headers(family_user))

    assert response.status_code == 200
    body = response.json()
    assert body["conversation_id"] == conv
    assert [(m["role"], m["content"]) for m in body["messages"]] == [("user", "hi"), ("assistant", "hello")]


def test_messages_of_foreign_conversation_is_404(client, db, family_user, make_user, auth_headers):
    other = make_user("family", email="aunt@example.com")
    conv = ChatRepository.create_conversation(db, other.id)

    response = client.get(f"/api/agent/conversations/{conv}/messages", headers=auth_headers(family_user))

    assert response.status_code == 404


def test_delete_conversation(client, db, family_user, auth_headers):
    conv = ChatRepository.create_conversation(db, family_user.id)
    ChatRepository.append_turn(db, conv, "user", "hi")
    headers = auth_headers(family_user)

    assert client.delete(f"/api/agent/conversations/{conv}", headers=headers).status_code == 204
    assert client.delete(f"/api/agent/conversations/{conv}", headers=headers).status_code == 404
    assert client.get("/api/agent/conversations", headers=headers).json() == []


def test_widget_config_defaults(client, family_user, auth_headers):
    response = client.get("/api/agent/config", headers=auth_headers(family_user))

    assert response.status_code == 200
    data = response.json()
    assert data["model"] == "gemini-2.5-flash-lite"
    assert data["max_history"] == 20
    assert data["enabled_tools"] == []
    assert data["quick_prompts"] == []
    assert data["widget_theme"]["primaryColor"] == "#c8907e"
