import json
from typing import Any, Dict, List

from flask import current_app

from flashbattle import db
from flashbattle.models import Bank, load_json


def save_bank(room_id: str, bank_id: str, name: str, questions: List[Dict[str, Any]]) -> None:
    """Store a bank, replacing any previous content under the same id."""
    payload = json.dumps({'id': bank_id, 'name': name or bank_id, 'questions': questions})
    bank = db.session.get(Bank, (room_id, bank_id))
    if bank is None:
        bank = Bank(room_id=room_id, bank_id=bank_id, payload=payload)
    else:
        bank.payload = payload
    db.session.add(bank)
    db.session.commit()
    current_app.logger.info(f"[save_bank] room={room_id} bank={bank_id} count={len(questions)}")


def _questions_of(obj) -> List[Dict[str, Any]]:
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict) and isinstance(obj.get('questions'), list):
        return obj['questions']
    return []


def list_banks(room_id: str) -> List[Dict[str, Any]]:
    result = []
    for bank in Bank.query.filter_by(room_id=room_id).order_by(Bank.bank_id).all():
        obj = load_json(bank.payload, None)
        if obj is None:
            current_app.logger.warning(f"[list_banks] room={room_id} bank={bank.bank_id} unreadable payload")
            result.append({'id': bank.bank_id, 'name': bank.bank_id, 'count': 0})
            continue
        meta = obj if isinstance(obj, dict) else {}
        bank_id = meta.get('id') or bank.bank_id
        result.append({
            'id': bank_id,
            'name': meta.get('name') or bank_id,
            'count': len(_questions_of(obj)),
        })
    return result


def load_questions(room_id: str, bank_id: str) -> List[Dict[str, Any]]:
    """Questions of a bank; empty when the bank is missing or unreadable."""
    bank = db.session.get(Bank, (room_id, bank_id))
    if bank is None:
        return []
    obj = load_json(bank.payload, None)
    if obj is None:
        current_app.logger.error(f"[load_questions] room={room_id} bank={bank_id} unreadable payload")
        return []
    return _questions_of(obj)


def delete_bank(room_id: str, bank_id: str) -> bool:
    deleted = Bank.query.filter_by(room_id=room_id, bank_id=bank_id).delete()
    db.session.commit()
    return deleted > 0
