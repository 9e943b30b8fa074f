from app.db.schema import User, UserRole, Inspection, Defect


# Roles that may delete any inspection or defect regardless of authorship
PRIVILEGED_ROLES = {UserRole.ADMIN, UserRole.MANAGER}


def owner_id_of(entity):
    """The user who created the entity: the inspector or the defect reporter."""
    if isinstance(entity, Inspection):
        return entity.inspector_id
    if isinstance(entity, Defect):
        return entity.reported_by_id
    raise TypeError(f"No ownership rule for {type(entity).__name__}")


def can_delete(entity, actor: User) -> bool:
    """Admins and managers may delete anything; everyone else only their own records."""
    if actor.role in PRIVILEGED_ROLES:
        return True
    return owner_id_of(entity) == actor.id
