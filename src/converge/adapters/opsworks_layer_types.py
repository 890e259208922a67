# Catalogue of OpsWorks layer types and their packed attributes.
#
# Keys are the typed field names exposed to callers; `api_name` is the key in
# the OpsWorks `Attributes` map.

from converge.core.models.layer import AttributeType, LayerAttribute, LayerType

custom_layer = LayerType(
    type_name="custom",
    custom_short_name=True,
)

ecs_cluster_layer = LayerType(
    type_name="ecs-cluster",
    default_layer_name="Ecs Cluster",
    attributes={
        "ecs_cluster_arn": LayerAttribute(
            api_name="EcsClusterArn", required=True, force_new=True
        ),
    },
)

ganglia_layer = LayerType(
    type_name="monitoring-master",
    default_layer_name="Ganglia",
    attributes={
        "password": LayerAttribute(
            api_name="GangliaPassword", required=True, write_only=True
        ),
        "url": LayerAttribute(api_name="GangliaUrl", default="/ganglia"),
        "username": LayerAttribute(api_name="GangliaUser", default="opsworks"),
    },
)

haproxy_layer = LayerType(
    type_name="lb",
    default_layer_name="HAProxy",
    attributes={
        "healthcheck_method": LayerAttribute(
            api_name="HaproxyHealthCheckMethod", default="OPTIONS"
        ),
        "healthcheck_url": LayerAttribute(api_name="HaproxyHealthCheckUrl", default="/"),
        "stats_enabled": LayerAttribute(
            api_name="EnableHaproxyStats", type=AttributeType.bool, default=True
        ),
        "stats_password": LayerAttribute(
            api_name="HaproxyStatsPassword", required=True, write_only=True
        ),
        "stats_url": LayerAttribute(api_name="HaproxyStatsUrl", default="/haproxy?stats"),
        "stats_user": LayerAttribute(api_name="HaproxyStatsUser", default="opsworks"),
    },
)

java_app_layer = LayerType(
    type_name="java-app",
    default_layer_name="Java App Server",
    attributes={
        "app_server": LayerAttribute(api_name="JavaAppServer", default="tomcat"),
        "app_server_version": LayerAttribute(api_name="JavaAppServerVersion", default="7"),
        "jvm_options": LayerAttribute(api_name="JvmOptions", default=""),
        "jvm_type": LayerAttribute(api_name="Jvm", default="openjdk"),
        "jvm_version": LayerAttribute(api_name="JvmVersion", default="7"),
    },
)

memcached_layer = LayerType(
    type_name="memcached",
    default_layer_name="Memcached",
    attributes={
        "allocated_memory": LayerAttribute(
            api_name="MemcachedMemory", type=AttributeType.int, default=512
        ),
    },
)

mysql_layer = LayerType(
    type_name="db-master",
    default_layer_name="MySQL",
    attributes={
        "root_password": LayerAttribute(api_name="MysqlRootPassword", write_only=True),
        "root_password_on_all_instances": LayerAttribute(
            api_name="MysqlRootPasswordUbiquitous", type=AttributeType.bool, default=True
        ),
    },
)

nodejs_app_layer = LayerType(
    type_name="nodejs-app",
    default_layer_name="Node.js App Server",
    attributes={
        "nodejs_version": LayerAttribute(api_name="NodejsVersion", default="0.10.38"),
    },
)

php_app_layer = LayerType(
    type_name="php-app",
    default_layer_name="PHP App Server",
)

rails_app_layer = LayerType(
    type_name="rails-app",
    default_layer_name="Rails App Server",
    attributes={
        "app_server": LayerAttribute(api_name="RailsStack", default="apache_passenger"),
        "bundler_version": LayerAttribute(api_name="BundlerVersion", default="1.5.3"),
        "manage_bundler": LayerAttribute(
            api_name="ManageBundler", type=AttributeType.bool, default=True
        ),
        "passenger_version": LayerAttribute(api_name="PassengerVersion", default="4.0.46"),
        "ruby_version": LayerAttribute(api_name="RubyVersion", default="2.0.0"),
        "rubygems_version": LayerAttribute(api_name="RubygemsVersion", default="2.2.2"),
    },
)

static_web_layer = LayerType(
    type_name="web",
    default_layer_name="Static Web Server",
)

# resource type name -> layer type
LAYER_TYPES = {
    "aws_opsworks_custom_layer": custom_layer,
    "aws_opsworks_ecs_cluster_layer": ecs_cluster_layer,
    "aws_opsworks_ganglia_layer": ganglia_layer,
    "aws_opsworks_haproxy_layer": haproxy_layer,
    "aws_opsworks_java_app_layer": java_app_layer,
    "aws_opsworks_memcached_layer": memcached_layer,
    "aws_opsworks_mysql_layer": mysql_layer,
    "aws_opsworks_nodejs_app_layer": nodejs_app_layer,
    "aws_opsworks_php_app_layer": php_app_layer,
    "aws_opsworks_rails_app_layer": rails_app_layer,
    "aws_opsworks_static_web_layer": static_web_layer,
}
