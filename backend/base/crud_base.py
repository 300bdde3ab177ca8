"""Base CRUD class for Flask blueprints."""
from flask import jsonify, request, g, current_app
from typing import Type, Optional, Dict, Any, Callable, Iterable
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase
from shared.enums import ProjectRole
from shared.models import now
from shared.schemas import parse_payload
from shared.validation import Validator, ValidationError
from ..errors import ApiError, ConflictError
from ..logging_config import log_event
from ..models import db, Status
from ..services import project_access
from ..utils import get_or_404, code_exists, is_unique_violation, resolve_status_reference, public_summary
import logging

DEFAULT_SORTABLE_FIELDS = ('id', 'code', 'name', 'created_at', 'updated_at')


def int_arg(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def str_arg(value, name):
    return Validator.validate_safe_identifier(value, name, 1, 255)


def bool_arg(value, name):
    return Validator.parse_bool_arg(value, name)


def choice_arg(enum_cls):
    def convert(value, name):
        return Validator.validate_choice(value, name, [e.value for e in enum_cls])
    return convert


def list_args(default_sort='id', default_order='asc'):
    """Read page/per_page/sort/order from the query string."""
    max_per_page = current_app.config.get('MAX_PAGE_SIZE', 100)
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', current_app.config.get('DEFAULT_PAGE_SIZE', 50), type=int)
    return {
        'page': max(page or 1, 1),
        'per_page': max(min(per_page or 1, max_per_page), 1),
        'sort': request.args.get('sort', default_sort),
        'order': request.args.get('order', default_order).lower(),
    }


class CRUDBase:
    """Base class providing common CRUD operations for Flask blueprints.

    This class encapsulates common patterns for:
    - Paginated, filtered and sorted list retrieval scoped to the caller's projects
    - Single resource retrieval with a project access check
    - Resource creation and updates validated by Pydantic schemas
    - Duplicate code detection (app-level pre-check plus UNIQUE constraint fallback)
    - Resource deletion with optional cascade operations

    Subclasses should override:
    - before_create() / before_update() - to check parents and resolve references
    - serialize() - to customize serialization
    - get_singular_name() - to customize resource name
    """

    # query-string name -> (model attribute, converter)
    filters: Dict[str, tuple] = {}
    sortable_fields: Iterable[str] = DEFAULT_SORTABLE_FIELDS
    status_applies_to: Optional[str] = None

    def __init__(self, model_class: Type[DeclarativeBase], create_schema=None, update_schema=None,
                 response_schema=None, logger_name: Optional[str] = None):
        """Initialize CRUD base class.

        Args:
            model_class: SQLAlchemy model class
            create_schema: Pydantic schema validating create payloads
            update_schema: Pydantic schema validating update payloads
            response_schema: Pydantic schema used for serialization
            logger_name: Optional logger name (defaults to class name)
        """
        self.model = model_class
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.response_schema = response_schema
        self.logger = logging.getLogger(logger_name or self.__class__.__name__)

    # Queries

    def base_query(self):
        return project_access.scope_query(self.model.query, self.model, project_access.current_user())

    def apply_filters(self, query, args):
        for name, (attribute, convert) in self.filters.items():
            raw = args.get(name)
            if raw is None or raw == '':
                continue
            query = query.filter(getattr(self.model, attribute) == convert(raw, name))

        status_code = args.get('status')
        if status_code and hasattr(self.model, 'status_id'):
            status_code = str_arg(status_code, 'status')
            query = query.filter(self.model.status_id.in_(select(Status.id).where(Status.code == status_code)))
        return query

    def apply_sort(self, query, sort, order):
        if sort not in self.sortable_fields:
            raise ValidationError(f"sort must be one of: {', '.join(self.sortable_fields)}")
        if order not in ('asc', 'desc'):
            raise ValidationError("order must be 'asc' or 'desc'")
        column = getattr(self.model, sort)
        query = query.order_by(column.desc() if order == 'desc' else column.asc())
        if sort != 'id':
            query = query.order_by(self.model.id.desc() if order == 'desc' else self.model.id.asc())
        return query

    def get_list(self, page: int = 1, per_page: int = 50, sort: str = 'id', order: str = 'asc',
                 args=None, query=None, max_per_page: int = 100) -> tuple:
        """Get paginated list of resources.

        Args:
            page: Page number (default: 1)
            per_page: Items per page (default: 50)
            sort: Column to sort by; must be in sortable_fields
            order: 'asc' or 'desc'
            args: Mapping of filter arguments (usually request.args)
            query: Optional pre-filtered query (defaults to base_query())
            max_per_page: Maximum items per page (default: 100)

        Returns:
            Flask JSON response with paginated results
        """
        per_page = min(per_page, max_per_page)
        query = self.base_query() if query is None else query
        query = self.apply_filters(query, args or {})
        query = self.apply_sort(query, sort, order)

        pagination = query.paginate(page=page, per_page=per_page, error_out=False)
        items = [self.serialize(item) for item in pagination.items]

        return jsonify({
            self.get_plural_name(): items,
            'pagination': pagination_dict(pagination)
        })

    def get_resource(self, resource_id, minimum=ProjectRole.VIEWER):
        resource = get_or_404(self.model, resource_id, self.get_singular_name().title())
        self.check_access(resource, minimum)
        return resource

    def get_detail(self, resource_id) -> tuple:
        """Get single resource by ID.

        Args:
            resource_id: Primary key ID of the resource

        Returns:
            Flask JSON response with resource data
        """
        return jsonify(self.serialize(self.get_resource(resource_id)))

    def check_access(self, resource, minimum=ProjectRole.VIEWER):
        return project_access.require_access_to(resource, minimum)

    # Writes

    def create(self, data: Optional[Dict[str, Any]] = None) -> tuple:
        """Create a new resource.

        Args:
            data: Already validated data; when omitted the request JSON is
                  validated with create_schema

        Returns:
            Flask JSON response with the created resource
        """
        try:
            if data is None:
                data = self.validate_create_data(self.get_json_data())

            resource = self.build(data)
            db.session.commit()

            log_event(self.logger, f"Created {self.get_singular_name()}: {resource.id} - "
                                   f"{getattr(resource, 'code', getattr(resource, 'name', 'N/A'))}",
                      action='create', resource=self.get_singular_name(), resource_id=resource.id,
                      user_id=getattr(getattr(g, 'user', None), 'id', None))

            return jsonify(self.serialize(resource)), 201

        except (ValidationError, ApiError) as e:
            self.logger.warning(f"Rejected {self.get_singular_name()} creation: {e}")
            db.session.rollback()
            raise
        except IntegrityError as e:
            db.session.rollback()
            raise self.translate_integrity_error(e, data)
        except Exception as e:
            self.logger.error(f"Failed to create {self.get_singular_name()}: {e}", exc_info=True)
            db.session.rollback()
            return jsonify({'error': f'Failed to create {self.get_singular_name()}'}), 500

    def build(self, data: Dict[str, Any]):
        """Insert and flush a resource from validated data without committing.

        Runs the before_create/after_create hooks, the duplicate code check and
        status resolution. Shared by create() and endpoints that insert
        several rows in one transaction.
        """
        data = self.before_create(dict(data))
        if 'code' in data and code_exists(self.model, data['code']):
            raise ConflictError(self.duplicate_code_message(data['code']))
        if self.status_applies_to and resolve_status_reference(data, self.status_applies_to):
            if hasattr(self.model, 'status_updated_at'):
                data['status_updated_at'] = now()

        resource = self.model(**data)
        if hasattr(self.model, 'created_by') and getattr(g, 'user', None) is not None:
            resource.created_by = g.user.id
        db.session.add(resource)
        db.session.flush()
        self.after_create(resource, data)
        return resource

    def update(self, resource_id: Any) -> tuple:
        """Update an existing resource.

        Args:
            resource_id: Primary key ID of the resource

        Returns:
            Flask JSON response with the updated resource
        """
        data = None
        try:
            resource = self.get_resource(resource_id, ProjectRole.CONTRIBUTOR)
            data = self.validate_update_data(self.get_json_data())
            data = self.before_update(data, resource)

            if 'code' in data and data['code'] != resource.code and code_exists(self.model, data['code'], resource.id):
                raise ConflictError(self.duplicate_code_message(data['code']))
            if self.status_applies_to and resolve_status_reference(
                    data, self.status_applies_to, getattr(resource, 'status_id', None)):
                if hasattr(self.model, 'status_updated_at'):
                    data['status_updated_at'] = now()

            for key, value in data.items():
                setattr(resource, key, value)

            db.session.commit()

            log_event(self.logger, f"Updated {self.get_singular_name()}: {resource_id}",
                      action='update', resource=self.get_singular_name(), resource_id=resource_id,
                      fields=sorted(data.keys()), user_id=getattr(getattr(g, 'user', None), 'id', None))
            return jsonify(self.serialize(resource))

        except (ValidationError, ApiError) as e:
            self.logger.warning(f"Rejected {self.get_singular_name()} update: {e}")
            db.session.rollback()
            raise
        except IntegrityError as e:
            db.session.rollback()
            raise self.translate_integrity_error(e, data or {})
        except Exception as e:
            self.logger.error(f"Failed to update {self.get_singular_name()}: {e}", exc_info=True)
            db.session.rollback()
            return jsonify({'error': f'Failed to update {self.get_singular_name()}'}), 500

    def delete(self, resource_id: Any, cascade_func: Optional[Callable] = None,
               minimum=ProjectRole.CONTRIBUTOR) -> tuple:
        """Delete a resource.

        Args:
            resource_id: Primary key ID of the resource
            cascade_func: Optional function to handle cascade deletion.
                        Should take resource_id and return summary dict
            minimum: Project role required to delete

        Returns:
            Flask JSON response with deletion summary
        """
        try:
            self.get_resource(resource_id, minimum)

            if cascade_func:
                summary = cascade_func(resource_id)
            else:
                db.session.delete(db.session.get(self.model, resource_id))
                summary = {}

            db.session.commit()
            remove_stored_files(summary.get('files', []))

            log_event(self.logger, f"Deleted {self.get_singular_name()}: {resource_id}",
                      action='delete', resource=self.get_singular_name(), resource_id=resource_id,
                      summary=public_summary(summary), user_id=getattr(getattr(g, 'user', None), 'id', None))
            return jsonify({
                'message': f'{self.get_singular_name().title()} deleted successfully',
                'summary': public_summary(summary)
            })
        except (ValidationError, ApiError):
            db.session.rollback()
            raise
        except Exception as e:
            self.logger.error(f"Failed to delete {self.get_singular_name()}: {e}", exc_info=True)
            db.session.rollback()
            return jsonify({'error': f'Failed to delete {self.get_singular_name()}'}), 500

    # Hooks

    def before_create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Check parents and permissions before insert. Returns the data to persist."""
        return data

    def after_create(self, resource, data: Dict[str, Any]) -> None:
        """Runs after the insert is flushed, inside the same transaction."""
        pass

    def before_update(self, data: Dict[str, Any], resource) -> Dict[str, Any]:
        return data

    # Helpers

    def translate_integrity_error(self, error: IntegrityError, data: Dict[str, Any]) -> ApiError:
        """Map a constraint violation onto 409 (duplicates) or 400 (anything else)."""
        if is_unique_violation(error, 'code'):
            self.logger.warning(f"Concurrent duplicate {self.get_singular_name()} code: {data.get('code')}")
            return ConflictError(self.duplicate_code_message(data.get('code')))
        if is_unique_violation(error):
            self.logger.warning(f"Unique constraint violated for {self.get_singular_name()}: {error.orig}")
            return ConflictError(f'{self.get_singular_name().title()} conflicts with an existing record')
        self.logger.warning(f"Constraint violated for {self.get_singular_name()}: {error.orig}")
        return ApiError(f'{self.get_singular_name().title()} data violates a database constraint', 400)

    def duplicate_code_message(self, code):
        return f"{self.get_singular_name().title()} with code '{code}' already exists"

    def serialize(self, resource: DeclarativeBase) -> Dict[str, Any]:
        """Serialize resource through the response schema, adding the status code."""
        result = self.response_schema.model_validate(resource).model_dump(mode='json')
        if hasattr(resource, 'status_id'):
            result['status'] = resource.status.code if resource.status is not None else None
        return result

    def get_json_data(self) -> Dict[str, Any]:
        """Get and validate JSON data from request.

        Returns:
            Dictionary of request JSON data

        Raises:
            ValidationError: If JSON is invalid or not a dict
        """
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError('Request body must contain valid JSON')
        if not isinstance(data, dict):
            raise ValidationError('Request data must be a JSON object')
        return data

    def validate_create_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return parse_payload(self.create_schema, data)

    def validate_update_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate data for update. Only fields present in data are returned."""
        validated = parse_payload(self.update_schema, data, partial=True)
        if not validated:
            raise ValidationError('No valid fields provided for update')
        return validated

    def get_singular_name(self) -> str:
        """Get singular resource name for messages.

        Returns:
            Singular resource name (e.g., 'project', 'shot')
        """
        table_name = self.model.__tablename__
        if table_name.endswith('s'):
            return table_name[:-1]
        return table_name

    def get_plural_name(self) -> str:
        """Get plural resource name for responses.

        Returns:
            Plural resource name (e.g., 'projects', 'shots')
        """
        return self.model.__tablename__


def pagination_dict(pagination):
    return {
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'pages': pagination.pages,
        'has_next': pagination.has_next,
        'has_prev': pagination.has_prev
    }


def remove_stored_files(object_names):
    """Delete stored objects after the owning rows are committed away."""
    if not object_names:
        return
    storage = current_app.extensions.get('media_storage')
    if storage is None:
        return
    try:
        storage.delete(*object_names)
    except Exception as e:
        # Rows are already gone; a leftover file is logged, not fatal
        logging.getLogger(__name__).error(f"Failed to remove stored files {object_names}: {e}", exc_info=True)
