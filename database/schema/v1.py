"""Schema v1 - Initial database schema.

This version includes tables for:
- Users (email or wallet identities)
- Collections (sellable items with a SOL price)
- Purchases (access grants, one per user and collection)
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'email', 'type': 'TEXT'},
                {'name': 'password_hash', 'type': 'TEXT'},
                {'name': 'wallet', 'type': 'TEXT'},
                {'name': 'username', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_users_email', 'columns': ['email'], 'unique': True},
                {'name': 'idx_users_wallet', 'columns': ['wallet'], 'unique': True}
            ]
        },
        {
            'name': 'collections',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'price', 'type': 'DECIMAL', 'nullable': False},
                {'name': 'preview', 'type': 'TEXT'},
                {'name': 'created_by', 'type': 'UUID'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['created_by'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_collections_created_by', 'columns': ['created_by']}
            ]
        },
        {
            'name': 'purchases',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'collection_id', 'type': 'INT8', 'nullable': False},
                {'name': 'access_key', 'type': 'TEXT', 'nullable': False},
                {'name': 'tx_signature', 'type': 'TEXT'},
                {'name': 'amount_lamports', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_purchases_user_collection', 'columns': ['user_id', 'collection_id'], 'unique': True},
                {'name': 'idx_purchases_signature', 'columns': ['tx_signature'], 'unique': True},
                {'name': 'idx_purchases_access_key', 'columns': ['access_key'], 'unique': True}
            ]
        }
    ]
}
