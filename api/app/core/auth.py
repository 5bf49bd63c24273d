from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    ADMIN = "admin"
    HOSPITAL = "hospital"
    DOCTOR = "doctor"


@dataclass(frozen=True, slots=True)
class AdminActor:
    user_id: int

    @property
    def role(self) -> ActorRole:
        return ActorRole.ADMIN


@dataclass(frozen=True, slots=True)
class HospitalActor:
    user_id: int
    hospital_profile_id: int

    @property
    def role(self) -> ActorRole:
        return ActorRole.HOSPITAL


@dataclass(frozen=True, slots=True)
class DoctorActor:
    user_id: int
    doctor_profile_id: int

    @property
    def role(self) -> ActorRole:
        return ActorRole.DOCTOR


Actor = AdminActor | HospitalActor | DoctorActor


def build_actor(*, user_id: int, role: str, profile_id: int | None) -> Actor:
    """Build the actor variant for an authenticated user.

    Raises ``PermissionError`` when the role is unknown or when a hospital or
    doctor user has no owned profile.
    """
    try:
        actor_role = ActorRole(role)
    except ValueError as exc:
        raise PermissionError(f"unsupported role: {role}") from exc

    if actor_role is ActorRole.ADMIN:
        return AdminActor(user_id=user_id)
    if profile_id is None:
        raise PermissionError(f"{actor_role.value} user {user_id} has no profile")
    if actor_role is ActorRole.HOSPITAL:
        return HospitalActor(user_id=user_id, hospital_profile_id=profile_id)
    return DoctorActor(user_id=user_id, doctor_profile_id=profile_id)
