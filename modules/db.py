# db.py

import json
from datetime import date, datetime
from decimal import Decimal

import mysql.connector
from modules.config import Config

def get_db_connection():
    return mysql.connector.connect(**Config.DB_CONFIG)

def serialize_row(row):
    """Converte valores do MySQL (Decimal, datas, JSON) para tipos serializáveis"""
    if row is None:
        return None
    result = {}
    for key, value in row.items():
        if isinstance(value, Decimal):
            result[key] = float(value)
        elif isinstance(value, (datetime, date)):
            result[key] = value.isoformat()
        elif key == 'metadata' and isinstance(value, str):
            try:
                result[key] = json.loads(value)
            except ValueError:
                result[key] = value
        else:
            result[key] = value
    return result

def serialize_rows(rows):
    return [serialize_row(row) for row in rows]

def pick(data, fields):
    """Mantém apenas os campos conhecidos presentes no payload"""
    return {field: data[field] for field in fields if field in data}

def insert_row(cursor, table, values):
    columns = ', '.join(values)
    placeholders = ', '.join(['%s'] * len(values))
    cursor.execute(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
        tuple(values.values())
    )
    return cursor.lastrowid

def update_row(cursor, table, row_id, values):
    if not values:
        return 0
    assignments = ', '.join(f'{column} = %s' for column in values)
    cursor.execute(
        f"UPDATE {table} SET {assignments} WHERE id = %s",
        tuple(values.values()) + (row_id,)
    )
    return cursor.rowcount
