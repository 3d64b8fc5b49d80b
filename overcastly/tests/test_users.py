import pytest
from bson import ObjectId

from overcastly import notifications
from overcastly.store import USERS

from conftest import add_user, auth_headers


NEW_USER = {
    'username': 'JSmith',
    'password': 'password',
    'firstName': 'John',
    'lastName': 'Smith',
    'email': 'johnsmith123@gmail.com',
}


class TestLogin:

    @pytest.mark.asyncio
    @pytest.mark.parametrize('login', ['JSmith', 'johnsmith123@gmail.com'])
    async def test_username_or_email(self, client, user, login):
        res = await client.post('/api/login', json={'login': login, 'password': 'password'})
        assert res.status_code == 200, res.text
        body = res.json()
        assert body['userId'] == str(user['_id'])
        assert body['username'] == 'JSmith'
        assert body['email'] == 'johnsmith123@gmail.com'

        me = await client.get('/api/authenticate', headers={'Authorization': f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.json() == {'userId': str(user['_id']), 'username': 'JSmith', 'email': 'johnsmith123@gmail.com'}

    @pytest.mark.asyncio
    async def test_missing_fields_is_400(self, client):
        res = await client.post('/api/login', json={'login': 'JSmith'})
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_user_is_401(self, client, user):
        res = await client.post('/api/login', json={'login': 'nobody', 'password': 'password'})
        assert res.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_password_is_401(self, client, user):
        res = await client.post('/api/login', json={'login': 'JSmith', 'password': 'wrong'})
        assert res.status_code == 401
        assert res.json()['error'] == 'Invalid credentials'

    @pytest.mark.asyncio
    async def test_pending_account_is_403(self, client, store):
        await add_user(store, active=False, pinCode='123456')
        res = await client.post('/api/login', json={'login': 'JSmith', 'password': 'password'})
        assert res.status_code == 403


class TestRegistration:

    @pytest.mark.asyncio
    async def test_one_step_registration_is_active(self, client, store):
        res = await client.post('/api/registeruser', json=NEW_USER)
        assert res.status_code == 201, res.text
        saved = await store.find_one(USERS, {'_id': ObjectId(res.json()['userId'])})
        assert saved['active'] is True
        assert saved['passwordHash'] != 'password'
        assert 'pinCode' not in saved

    @pytest.mark.asyncio
    async def test_missing_fields_is_400(self, client):
        payload = {k: v for k, v in NEW_USER.items() if k != 'lastName'}
        res = await client.post('/api/registeruser', json=payload)
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_pin_flow(self, client, store, monkeypatch):
        sent = []

        async def capture(user_id, email, pin):
            sent.append((user_id, email, pin))
            return True
        monkeypatch.setattr('overcastly.crud.send_registration_pin', capture)

        res = await client.post('/api/initialregisteruser', json=NEW_USER)
        assert res.status_code == 201, res.text
        user_id = res.json()['userId']
        pending = await store.find_one(USERS, {'_id': ObjectId(user_id)})
        assert pending['active'] is False
        assert len(pending['pinCode']) == 6 and pending['pinCode'].isdigit()
        assert sent == [(user_id, 'johnsmith123@gmail.com', pending['pinCode'])]

        wrong = '000000' if pending['pinCode'] != '000000' else '111111'
        res = await client.post(f'/api/completeregisteruser/{user_id}', json={'pin': wrong})
        assert res.status_code == 400

        res = await client.post(f'/api/completeregisteruser/{user_id}', json={'pin': pending['pinCode']})
        assert res.status_code == 200
        active = await store.find_one(USERS, {'_id': ObjectId(user_id)})
        assert active['active'] is True
        assert 'pinCode' not in active

        res = await client.post(f'/api/completeregisteruser/{user_id}', json={'pin': pending['pinCode']})
        assert res.status_code == 409

        res = await client.post('/api/login', json={'login': 'JSmith', 'password': 'password'})
        assert res.status_code == 200

    @pytest.mark.asyncio
    async def test_pin_registration_without_kafka_still_succeeds(self, client, store, monkeypatch):
        monkeypatch.setattr('overcastly.core.KAFKA_PRODUCER', None)
        res = await client.post('/api/initialregisteruser', json=NEW_USER)
        assert res.status_code == 201

    @pytest.mark.asyncio
    async def test_duplicate_email_is_409(self, client):
        first = await client.post('/api/initialregisteruser', json=NEW_USER)
        assert first.status_code == 201
        res = await client.post('/api/initialregisteruser', json=dict(NEW_USER, username='Other'))
        assert res.status_code == 409
        assert 'Email' in res.json()['error']

    @pytest.mark.asyncio
    async def test_duplicate_username_is_409(self, client, user):
        res = await client.post('/api/registeruser', json=dict(NEW_USER, email='someoneelse@gmail.com'))
        assert res.status_code == 409
        assert res.json()['error'] == 'Username already exists'

    @pytest.mark.asyncio
    async def test_complete_unknown_user_is_404(self, client):
        res = await client.post(f'/api/completeregisteruser/{ObjectId()}', json={'pin': '123456'})
        assert res.status_code == 404

    @pytest.mark.asyncio
    async def test_pending_without_pin_activates_directly(self, client, store):
        user = await add_user(store, active=False)
        res = await client.post(f"/api/completeregisteruser/{user['_id']}", json={})
        assert res.status_code == 200
        assert (await store.find_one(USERS, {'_id': user['_id']}))['active'] is True


class TestUsers:

    @pytest.mark.asyncio
    async def test_get_user_hides_secrets(self, client, store):
        user = await add_user(store, active=False, pinCode='123456', image='profile-pic.png')
        res = await client.get(f"/api/users/{user['_id']}")
        assert res.status_code == 200
        body = res.json()
        assert body['username'] == 'JSmith'
        assert body['firstName'] == 'John'
        assert body['image'] == 'profile-pic.png'
        assert 'passwordHash' not in body
        assert 'pinCode' not in body

    @pytest.mark.asyncio
    async def test_get_missing_user_is_404(self, client):
        assert (await client.get(f'/api/users/{ObjectId()}')).status_code == 404

    @pytest.mark.asyncio
    async def test_update_self(self, client, store, user):
        res = await client.put(f"/api/users/{user['_id']}", headers=auth_headers(user),
                               json={'firstName': 'Johnny', 'email': 'johnny@gmail.com'})
        assert res.status_code == 200, res.text
        saved = await store.find_one(USERS, {'_id': user['_id']})
        assert saved['firstName'] == 'Johnny'
        assert saved['email'] == 'johnny@gmail.com'
        assert saved['lastName'] == 'Smith'

    @pytest.mark.asyncio
    async def test_legacy_update_path(self, client, store, user):
        res = await client.put(f"/api/updateuser/{user['_id']}", headers=auth_headers(user), json={'lastName': 'Smythe'})
        assert res.status_code == 200
        assert (await store.find_one(USERS, {'_id': user['_id']}))['lastName'] == 'Smythe'

    @pytest.mark.asyncio
    async def test_update_no_fields_is_400(self, client, user):
        res = await client.put(f"/api/users/{user['_id']}", headers=auth_headers(user), json={})
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_update_bad_email_is_400(self, client, user):
        res = await client.put(f"/api/users/{user['_id']}", headers=auth_headers(user), json={'email': 'not-an-email'})
        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_update_someone_else_is_403(self, client, user, other_user):
        res = await client.put(f"/api/users/{other_user['_id']}", headers=auth_headers(user), json={'firstName': 'x'})
        assert res.status_code == 403

    @pytest.mark.asyncio
    async def test_update_to_taken_email_is_409(self, client, user, other_user):
        res = await client.put(f"/api/users/{user['_id']}", headers=auth_headers(user),
                               json={'email': other_user['email']})
        assert res.status_code == 409


@pytest.mark.asyncio
async def test_publish_without_producer_returns_false(monkeypatch):
    monkeypatch.setattr('overcastly.core.KAFKA_PRODUCER', None)
    assert await notifications.send_registration_pin('u1', 'a@b.io', '123456') is False


@pytest.mark.asyncio
async def test_publish_sends_json_event(monkeypatch):
    class FakeProducer:
        def __init__(self):
            self.sent = []

        async def send_and_wait(self, topic, value, key=None):
            self.sent.append((topic, value, key))

    producer = FakeProducer()
    monkeypatch.setattr('overcastly.core.KAFKA_PRODUCER', producer)
    assert await notifications.send_registration_pin('u1', 'a@b.io', '123456') is True
    topic, value, key = producer.sent[0]
    assert topic == notifications.PIN_EMAIL_TOPIC
    assert key == b'u1'
    assert b'"pin": "123456"' in value
