import pytest

from conftest import API


@pytest.fixture
def pair(make_client):
    return make_client(first_name="Ife"), make_client(first_name="Tolu")


def open_conversation(client, user, other, **fields):
    response = client.post(
        f"{API}/chat/conversations", json={"other_user_id": other.id, **fields}, headers=user.headers
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]["conversation"]


def send(client, conversation, user, text="Hello"):
    return client.post(
        f"{API}/chat/conversations/{conversation['id']}/messages", json={"text": text}, headers=user.headers
    )


def test_conversation_is_reused(client, pair):
    first, second = pair
    conversation = open_conversation(client, first, second)
    assert [p["first_name"] for p in conversation["participants"]] == ["Ife", "Tolu"]
    assert conversation["unread_count"] == {str(first.id): 0, str(second.id): 0}
    again = open_conversation(client, second, first)
    assert again["id"] == conversation["id"]


def test_no_conversation_with_self(client, pair):
    first, _ = pair
    response = client.post(f"{API}/chat/conversations", json={"other_user_id": first.id}, headers=first.headers)
    assert response.status_code == 400
    assert response.json()["message"] == "You cannot start a conversation with yourself"


def test_booking_conversation_needs_both_parties(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    customer = make_client()
    booking = make_booking(customer, make_service(vendor))
    outsider = make_client()
    response = client.post(
        f"{API}/chat/conversations",
        json={"other_user_id": outsider.id, "booking_id": booking["id"]},
        headers=customer.headers,
    )
    assert response.status_code == 403
    conversation = open_conversation(client, customer, vendor, booking_id=booking["id"])
    assert conversation["booking_id"] == booking["id"]


def test_messages_and_unread_counts(client, pair):
    first, second = pair
    conversation = open_conversation(client, first, second)
    response = send(client, conversation, first, "Are you free Saturday?")
    assert response.status_code == 201
    message = response.json()["data"]["message"]
    assert message["receiver_id"] == second.id
    assert message["sender"]["first_name"] == "Ife"
    send(client, conversation, first, "Around noon")

    assert client.get(f"{API}/chat/unread-count", headers=second.headers).json()["data"]["unread_count"] == 2
    listing = client.get(f"{API}/chat/conversations", headers=second.headers).json()["data"]
    assert listing[0]["last_message"]["text"] == "Around noon"

    messages = client.get(
        f"{API}/chat/conversations/{conversation['id']}/messages", headers=second.headers
    ).json()["data"]
    assert [m["text"] for m in messages] == ["Are you free Saturday?", "Around noon"]

    client.put(f"{API}/chat/conversations/{conversation['id']}/read", headers=second.headers)
    assert client.get(f"{API}/chat/unread-count", headers=second.headers).json()["data"]["unread_count"] == 0


def test_empty_message_rejected(client, pair):
    first, second = pair
    conversation = open_conversation(client, first, second)
    response = client.post(
        f"{API}/chat/conversations/{conversation['id']}/messages", json={}, headers=first.headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Message must have text or attachments"


def test_outsiders_cannot_read(client, pair, make_client):
    first, second = pair
    conversation = open_conversation(client, first, second)
    outsider = make_client()
    response = client.get(f"{API}/chat/conversations/{conversation['id']}/messages", headers=outsider.headers)
    assert response.status_code == 403
    assert send(client, conversation, outsider).status_code == 403


def test_delete_own_message_only(client, pair):
    first, second = pair
    conversation = open_conversation(client, first, second)
    message = send(client, conversation, first).json()["data"]["message"]
    assert client.delete(f"{API}/chat/messages/{message['id']}", headers=second.headers).status_code == 403
    assert client.delete(f"{API}/chat/messages/{message['id']}", headers=first.headers).status_code == 200
    messages = client.get(
        f"{API}/chat/conversations/{conversation['id']}/messages", headers=first.headers
    ).json()["data"]
    assert messages == []


def test_archive_and_reopen(client, pair):
    first, second = pair
    conversation = open_conversation(client, first, second)
    client.post(f"{API}/chat/conversations/{conversation['id']}/archive", headers=first.headers)
    assert client.get(f"{API}/chat/conversations", headers=first.headers).json()["data"] == []
    reopened = open_conversation(client, first, second)
    assert reopened["id"] == conversation["id"]
    assert reopened["is_active"] is True


def test_search(client, pair, make_client):
    first, second = pair
    conversation = open_conversation(client, first, second)
    send(client, conversation, first, "Bring the blue BRAIDING hair")
    send(client, conversation, second, "Okay")
    found = client.get(f"{API}/chat/search", params={"q": "braiding"}, headers=second.headers).json()
    assert [m["text"] for m in found["data"]] == ["Bring the blue BRAIDING hair"]
    assert client.get(f"{API}/chat/search", params={"q": "braiding"}, headers=make_client().headers).json()["data"] == []
    assert client.get(f"{API}/chat/search", headers=first.headers).status_code == 400
