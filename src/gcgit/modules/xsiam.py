"""XSIAM content types."""
from .schema import ContentTypeDefinition, JsonCollection, Module, ScriptCode

EXTENDED_VIEW = {"request_data": {"extended_view": True}}
EMPTY_REQUEST = {"request_data": {}}


XSIAM_MODULE = Module(
    id="xsiam",
    name="XSIAM",
    base_api_path="/public_api/v1",
    content_types=(
        ContentTypeDefinition(
            name="dashboards",
            get_endpoint="dashboards/get",
            id_field="global_id",
            request_body=EMPTY_REQUEST,
            response_path="objects[0].dashboards_data",
            insert_endpoint="dashboards/insert",
            delete_endpoint="dashboards/delete",
        ),
        ContentTypeDefinition(
            name="biocs",
            get_endpoint="bioc/get",
            id_field="rule_id",
            request_body=EXTENDED_VIEW,
            response_path="objects",
            insert_endpoint="bioc/insert",
            delete_endpoint="bioc/delete",
        ),
        ContentTypeDefinition(
            name="correlation_searches",
            get_endpoint="correlations/get",
            id_field="rule_id",
            request_body=EXTENDED_VIEW,
            response_path="objects",
            insert_endpoint="correlations/insert",
            delete_endpoint="correlations/delete",
        ),
        ContentTypeDefinition(
            name="widgets",
            get_endpoint="widgets/get",
            id_field="creation_time",
            request_body=EMPTY_REQUEST,
            response_path="objects[0].widgets_data",
            insert_endpoint="widgets/insert",
            delete_endpoint="widgets/delete",
        ),
        ContentTypeDefinition(
            name="authentication_settings",
            get_endpoint="authentication-settings/get/settings",
            id_field="name",
            request_body=EMPTY_REQUEST,
            response_path="reply",
            insert_endpoint="authentication-settings/insert",
            delete_endpoint="authentication-settings/delete",
        ),
        ContentTypeDefinition(
            name="scripts",
            get_endpoint="scripts/get_scripts",
            id_field="script_uid",
            request_body=EMPTY_REQUEST,
            strategy=ScriptCode(
                list_endpoint="scripts/get_scripts",
                code_endpoint="scripts/get_script_code",
                list_response_path="reply.scripts",
                uid_field="script_uid",
            ),
        ),
        ContentTypeDefinition(
            name="scheduled_queries",
            get_endpoint="scheduled_queries/list",
            id_field="query_def_id",
            request_body=EXTENDED_VIEW,
            response_path="reply.DATA",
        ),
        ContentTypeDefinition(
            name="xql_library",
            get_endpoint="../xql_library/get",
            id_field="id",
            request_body=EXTENDED_VIEW,
            response_path="reply.xql_queries",
        ),
        ContentTypeDefinition(
            name="rbac_users",
            get_endpoint="rbac/get_users",
            id_field="user_email",
            request_body=EMPTY_REQUEST,
            response_path="reply",
            strategy=JsonCollection(),
        ),
    ),
)
