from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional

from google.cloud import firestore

from safety_admin.features.users.domain.user_entity import BanSchedule, UserProfile
from safety_admin.utils.time_utils import days_remaining, ensure_utc, remaining_time, to_iso

# Fields owned by the ban lifecycle; cleared together on unban.
BAN_FIELDS = (
    'banReason',
    'bannedAt',
    'bannedBy',
    'banDuration',
    'banDurationUnit',
    'banDurationDisplay',
    'banExpiresAt',
)

# ------------------------------------------------------------------
# Firestore Mappers
# ------------------------------------------------------------------


def from_firestore_dict(user_id: str, data: Dict[str, Any], update_time: Any = None) -> UserProfile:
    return UserProfile(
        id=user_id,
        username=data.get('username'),
        email=data.get('email'),
        auth_uid=data.get('authUid'),
        is_active=data.get('isActive', True),
        is_banned=bool(data.get('isBanned', False)),
        ban_reason=data.get('banReason'),
        banned_at=ensure_utc(data.get('bannedAt')),
        banned_by=data.get('bannedBy'),
        ban_duration=data.get('banDuration'),
        ban_duration_unit=data.get('banDurationUnit'),
        ban_duration_display=data.get('banDurationDisplay'),
        ban_expires_at=ensure_utc(data.get('banExpiresAt')),
        violation_count=int(data.get('violationCount') or 0),
        updated_at=ensure_utc(data.get('updatedAt')),
        update_time=update_time,
    )


def ban_state_fields(profile: UserProfile) -> Dict[str, Any]:
    """The profile's ban-related fields as stored, with absent ones deleted."""
    values = {
        'banReason': profile.ban_reason,
        'bannedAt': profile.banned_at,
        'bannedBy': profile.banned_by,
        'banDuration': profile.ban_duration,
        'banDurationUnit': profile.ban_duration_unit,
        'banDurationDisplay': profile.ban_duration_display,
        'banExpiresAt': profile.ban_expires_at,
    }
    fields: Dict[str, Any] = {
        'isBanned': profile.is_banned,
        'isActive': profile.is_active,
    }
    for key, value in values.items():
        if value is None and not (key == 'banExpiresAt' and profile.is_banned):
            fields[key] = firestore.DELETE_FIELD
        else:
            fields[key] = value
    return fields


def cleared_ban_fields(now: datetime) -> Dict[str, Any]:
    fields: Dict[str, Any] = {key: firestore.DELETE_FIELD for key in BAN_FIELDS}
    fields.update({'isBanned': False, 'isActive': True, 'updatedAt': now})
    return fields


def schedule_to_dict(schedule: BanSchedule) -> Dict[str, Any]:
    return {
        'userId': schedule.user_id,
        'banExpiresAt': schedule.ban_expires_at,
        'createdAt': schedule.created_at,
        'metadata': schedule.metadata,
    }


def schedule_from_dict(data: Dict[str, Any]) -> BanSchedule:
    return BanSchedule(
        user_id=data.get('userId', ''),
        ban_expires_at=ensure_utc(data.get('banExpiresAt')),
        created_at=ensure_utc(data.get('createdAt')),
        metadata=data.get('metadata') or {},
    )

# ------------------------------------------------------------------
# Response Mappers
# ------------------------------------------------------------------


def to_profile_response(profile: UserProfile) -> Dict[str, Any]:
    return {
        'userId': profile.id,
        'username': profile.username,
        'email': profile.email,
        'isActive': profile.is_active,
        'isBanned': profile.is_banned,
        'banReason': profile.ban_reason,
        'bannedAt': to_iso(profile.banned_at),
        'bannedBy': profile.banned_by,
        'banDuration': profile.ban_duration,
        'banDurationUnit': profile.ban_duration_unit,
        'banDurationDisplay': profile.ban_duration_display,
        'banExpiresAt': to_iso(profile.ban_expires_at),
        'violationCount': profile.violation_count,
    }


def to_banned_user_response(profile: UserProfile, now: datetime) -> Dict[str, Any]:
    response = to_profile_response(profile)
    response.update({
        'isPermanent': profile.is_permanent_ban,
        'daysRemaining': days_remaining(profile.ban_expires_at, now),
    })
    return response


def to_ban_status_response(profile: Optional[UserProfile], now: datetime) -> Dict[str, Any]:
    if profile is None or not profile.is_banned:
        return {'isBanned': False}
    return {
        'isBanned': True,
        'userId': profile.id,
        'username': profile.username,
        'banReason': profile.ban_reason,
        'bannedAt': to_iso(profile.banned_at),
        'banExpiresAt': to_iso(profile.ban_expires_at),
        'banDurationDisplay': profile.ban_duration_display,
        'isPermanent': profile.is_permanent_ban,
        'remainingTime': remaining_time(profile.ban_expires_at, now),
    }
