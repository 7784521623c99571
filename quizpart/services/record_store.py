"""
Record Store
Generic "items in a named list" storage used for results and saved progress.
Two backends: a local SQL table and the hosting portal's list REST API.
"""
import logging

import httpx
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from quizpart.errors import RecordStoreError
from quizpart.extensions import db
from quizpart.models.list_item import ListItem

logger = logging.getLogger(__name__)

# Portal field kinds
TEXT, NOTE, DATETIME, NUMBER = 2, 3, 4, 9

RESULTS_COLUMNS = {
    'UserName': TEXT,
    'UserId': TEXT,
    'UserEmail': TEXT,
    'QuizTitle': TEXT,
    'Score': NUMBER,
    'TotalPoints': NUMBER,
    'ScorePercentage': NUMBER,
    'QuestionsAnswered': NUMBER,
    'TotalQuestions': NUMBER,
    'QuestionDetails': NOTE,
    'ResultDate': DATETIME,
}

PROGRESS_COLUMNS = {
    'UserName': TEXT,
    'UserId': TEXT,
    'QuizTitle': TEXT,
    'QuizData': NOTE,
    'LastSaved': DATETIME,
}


class RecordStore:
    """Interface shared by the storage backends"""

    def ensure_list(self, list_name, columns, description=None):
        """Create the list and its columns when missing. Returns True if created."""
        return False

    def get_items(self, list_name, filters=None, order_by=None, descending=False, top=None):
        raise NotImplementedError

    def get_item(self, list_name, item_id):
        raise NotImplementedError

    def add_item(self, list_name, fields):
        raise NotImplementedError

    def update_item(self, list_name, item_id, fields):
        raise NotImplementedError

    def delete_item(self, list_name, item_id):
        raise NotImplementedError


def _sort_key(value):
    # None sorts first, mixed types fall back to their string form
    if value is None:
        return (0, '')
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


# Item keys backed by real columns
ITEM_COLUMNS = {
    'Id': ListItem.id,
    'Created': ListItem.created,
    'Modified': ListItem.modified,
}


class SqlRecordStore(RecordStore):
    """Lists kept in the local database, fields stored as a JSON blob"""

    def _commit(self, action):
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error('Record store %s failed: %s', action, exc)
            raise RecordStoreError(f'Failed to {action}: {exc}')

    def _load(self, list_name, item_id):
        try:
            row = ListItem.query.filter_by(list_name=list_name, id=item_id).first()
        except SQLAlchemyError as exc:
            raise RecordStoreError(f'Failed to read {list_name}: {exc}')
        if row is None:
            raise RecordStoreError(f'Item {item_id} not found in {list_name}', status=404)
        return row

    def get_items(self, list_name, filters=None, order_by=None, descending=False, top=None):
        """
        Items of one list. Ordering by Id, Created or Modified and an
        unfiltered top run in SQL; every other field lives in the JSON
        blob and is filtered and sorted after loading the list.
        """
        query = ListItem.query.filter_by(list_name=list_name)
        column = ITEM_COLUMNS.get(order_by)
        if column is not None:
            if descending:
                query = query.order_by(column.desc(), ListItem.id.desc())
            else:
                query = query.order_by(column, ListItem.id)
            if top is not None and not filters:
                query = query.limit(top)
        else:
            query = query.order_by(ListItem.id)
        try:
            rows = query.all()
        except SQLAlchemyError as exc:
            raise RecordStoreError(f'Failed to read {list_name}: {exc}')

        items = [row.to_item() for row in rows]
        if filters:
            items = [
                item for item in items
                if all(item.get(key) == value for key, value in filters.items())
            ]
        if order_by and column is None:
            items.sort(key=lambda item: (_sort_key(item.get(order_by)), item['Id']), reverse=descending)
        if top is not None:
            items = items[:top]
        return items

    def get_item(self, list_name, item_id):
        return self._load(list_name, item_id).to_item()

    def add_item(self, list_name, fields):
        row = ListItem(list_name=list_name)
        row.set_fields(fields)
        db.session.add(row)
        self._commit(f'add item to {list_name}')
        return row.to_item()

    def update_item(self, list_name, item_id, fields):
        row = self._load(list_name, item_id)
        merged = row.get_fields()
        merged.update(fields)
        row.set_fields(merged)
        self._commit(f'update item {item_id} in {list_name}')
        return row.to_item()

    def delete_item(self, list_name, item_id):
        row = self._load(list_name, item_id)
        db.session.delete(row)
        self._commit(f'delete item {item_id} from {list_name}')


class RestRecordStore(RecordStore):
    """Lists on the portal, reached through its OData list API"""

    JSON_TYPE = 'application/json;odata=nometadata'

    def __init__(self, site_url, token=None, timeout=15, client=None):
        self.site_url = site_url.rstrip('/')
        self.token = token
        self.client = client or httpx.Client(timeout=timeout)
        self._ensured = set()

    def _list_url(self, list_name):
        name = list_name.replace("'", "''")
        return f"{self.site_url}/_api/web/lists/getbytitle('{name}')"

    def _items_url(self, list_name, item_id=None):
        url = f'{self._list_url(list_name)}/items'
        if item_id is not None:
            url += f'({int(item_id)})'
        return url

    def _headers(self, extra=None):
        headers = {
            'Accept': self.JSON_TYPE,
            'Content-Type': self.JSON_TYPE,
            'odata-version': '',
        }
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        if extra:
            headers.update(extra)
        return headers

    def _send(self, method, url, action, **kwargs):
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error('Record store request to %s failed: %s', url, exc)
            raise RecordStoreError(f'Failed to {action}: {exc}')
        if response.status_code >= 400:
            logger.error('Record store %s returned %s: %s', url, response.status_code, response.text)
            raise RecordStoreError(
                f'Failed to {action}: {response.status_code} {response.text}',
                status=response.status_code,
            )
        return response

    def ensure_list(self, list_name, columns, description=None):
        """
        Provision a missing list the first time it is used in this process.
        Column failures are logged and skipped; a list that cannot be
        created raises RecordStoreError.
        """
        if list_name in self._ensured:
            return False
        try:
            self._send('GET', self._list_url(list_name), f'look up {list_name}', headers=self._headers())
        except RecordStoreError as exc:
            if exc.status != 404:
                raise
        else:
            self._ensured.add(list_name)
            return False

        logger.info('List %s not found, creating it', list_name)
        self._send(
            'POST', f'{self.site_url}/_api/web/lists', f'create list {list_name}',
            json={
                'Title': list_name,
                'BaseTemplate': 100,
                'ContentTypesEnabled': False,
                'Description': description or list_name,
            },
            headers=self._headers(),
        )
        for title, kind in columns.items():
            try:
                self._send(
                    'POST', f'{self._list_url(list_name)}/fields', f'create column {title}',
                    json={'Title': title, 'FieldTypeKind': kind},
                    headers=self._headers(),
                )
            except RecordStoreError as exc:
                logger.error('Could not create column %s on %s: %s', title, list_name, exc)
        self._ensured.add(list_name)
        return True

    @staticmethod
    def _literal(value):
        if isinstance(value, bool):
            return 'true' if value else 'false'
        if isinstance(value, (int, float)):
            return str(value)
        text = str(value).replace("'", "''")
        return f"'{text}'"

    def get_items(self, list_name, filters=None, order_by=None, descending=False, top=None):
        params = {}
        if filters:
            params['$filter'] = ' and '.join(
                f'{key} eq {self._literal(value)}' for key, value in filters.items()
            )
        if order_by:
            params['$orderby'] = f"{order_by} {'desc' if descending else 'asc'}"
        if top is not None:
            params['$top'] = str(top)
        response = self._send(
            'GET', self._items_url(list_name), f'read {list_name}',
            params=params, headers=self._headers(),
        )
        try:
            return response.json().get('value', [])
        except ValueError:
            raise RecordStoreError(f'Invalid response while reading {list_name}')

    def get_item(self, list_name, item_id):
        response = self._send(
            'GET', self._items_url(list_name, item_id), f'read item {item_id}',
            headers=self._headers(),
        )
        try:
            return response.json()
        except ValueError:
            raise RecordStoreError(f'Invalid response while reading item {item_id}')

    def add_item(self, list_name, fields):
        response = self._send(
            'POST', self._items_url(list_name), f'add item to {list_name}',
            json=fields, headers=self._headers(),
        )
        try:
            return response.json()
        except ValueError:
            raise RecordStoreError(f'Invalid response while adding to {list_name}')

    def update_item(self, list_name, item_id, fields):
        self._send(
            'POST', self._items_url(list_name, item_id), f'update item {item_id}',
            json=fields,
            headers=self._headers({'X-HTTP-Method': 'MERGE', 'IF-MATCH': '*'}),
        )
        item = dict(fields)
        item['Id'] = item_id
        return item

    def delete_item(self, list_name, item_id):
        self._send(
            'POST', self._items_url(list_name, item_id), f'delete item {item_id}',
            headers=self._headers({'X-HTTP-Method': 'DELETE', 'IF-MATCH': '*'}),
        )


def build_record_store(config):
    backend = config.get('RECORD_STORE_BACKEND', 'sql')
    if backend == 'rest':
        site_url = config.get('RECORD_STORE_SITE_URL')
        if not site_url:
            raise RecordStoreError('RECORD_STORE_SITE_URL is required for the rest backend')
        return RestRecordStore(
            site_url,
            token=config.get('RECORD_STORE_TOKEN') or None,
            timeout=config.get('RECORD_STORE_TIMEOUT', 15),
        )
    if backend == 'sql':
        return SqlRecordStore()
    raise RecordStoreError(f'Unknown record store backend {backend!r}')


def get_record_store():
    """Record store for the current app, built on first use"""
    store = current_app.extensions.get('quizpart_record_store')
    if store is None:
        store = build_record_store(current_app.config)
        current_app.extensions['quizpart_record_store'] = store
    return store
