"""
ListItem Model
Backing table for the SQL record store: one row per item in a named list
"""
import json

from quizpart.extensions import db
from quizpart.models.widget import now_utc


class ListItem(db.Model):
    """Generic list item with a JSON field blob"""
    __tablename__ = 'list_item'

    id = db.Column(db.Integer, primary_key=True)
    list_name = db.Column(db.String(100), nullable=False, index=True)
    fields_json = db.Column(db.Text, nullable=False, default='{}')
    created = db.Column(db.DateTime, default=now_utc)
    modified = db.Column(db.DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return f'<ListItem {self.list_name}#{self.id}>'

    def get_fields(self):
        try:
            fields = json.loads(self.fields_json or '{}')
        except ValueError:
            return {}
        return fields if isinstance(fields, dict) else {}

    def set_fields(self, fields):
        self.fields_json = json.dumps(fields, default=str)

    def to_item(self):
        item = dict(self.get_fields())
        item['Id'] = self.id
        item['Created'] = self.created.isoformat() if self.created else None
        item['Modified'] = self.modified.isoformat() if self.modified else None
        return item
