"""
Site members API: members linked to contacts, badges and the following graph.
"""
from typing import Any, Dict, List, Optional

from .base import RemoteAdapter, create_result


class MemberAdapter(RemoteAdapter):

    def _query_one(self, token: str, field: str, value: str) -> Optional[dict]:
        if not value:
            return None
        response = self.client.post(token, 'members/v1/members/query', {
            'query': {
                'filter': {field: {'$eq': value}},
                'paging': {'limit': 1},
            }
        })
        if response.ok:
            members = response.data.get('members') or []
            return members[0] if members else None
        return None

    def find_by_contact_id(self, token: str, contact_id: str) -> Optional[dict]:
        return self._query_one(token, 'contactId', contact_id)

    def find_by_natural_key(self, token: str, email: str) -> Optional[dict]:
        return self._query_one(token, 'loginEmail', email)

    def create(self, token: str, member: dict) -> Dict[str, Any]:
        response = self.client.post(token, 'members/v1/members', {'member': member})
        return create_result(response, 'member.id')

    def list_badges(self, token: str, member_id: str) -> List[dict]:
        response = self.client.get(token, f'members/v1/members/{member_id}/badges')
        return response.data.get('badges') or [] if response.ok else []

    def assign_badge(self, token: str, member_id: str, badge_key: str) -> Dict[str, Any]:
        response = self.client.post(token, f'members/v1/members/{member_id}/badges', {'badgeKey': badge_key})
        return {'ok': response.ok, 'status': response.status, 'error': None if response.ok else response.body}

    def list_following(self, token: str, member_id: str) -> List[dict]:
        response = self.client.get(token, f'members/v1/members/{member_id}/following')
        return response.data.get('members') or [] if response.ok else []

    def follow(self, token: str, member_id: str, target_member_id: str) -> Dict[str, Any]:
        response = self.client.post(token, f'members/v1/members/{member_id}/following', {
            'memberId': target_member_id
        })
        return {'ok': response.ok, 'status': response.status, 'error': None if response.ok else response.body}
