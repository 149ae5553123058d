"""
Topology stack - the complete Harbor deployment in one composition unit.

Declares, in a single pass:
- VPC with public, private and isolated subnets
- Application Load Balancer with HTTPS on the API name of an existing hosted zone
- ECS Fargate service for the web container
- Aurora PostgreSQL Serverless v2 behind an RDS Proxy
- Cognito user pool for end-user identity
- CloudFront distribution in front of the API and static assets
- Kinesis -> Firehose -> S3 analytics pipeline catalogued in Glue
- CloudWatch logs, alarms and dashboard with SNS notifications

Prerequisite: the public hosted zone for domain_name must exist in the
target account (found by lookup, or imported with hosted_zone_id).
"""

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_certificatemanager as acm,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
    aws_cognito as cognito,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_glue as glue,
    aws_iam as iam,
    aws_kinesis as kinesis,
    aws_kinesisfirehose as firehose,
    aws_logs as logs,
    aws_rds as rds,
    aws_route53 as route53,
    aws_route53_targets as route53_targets,
    aws_s3 as s3,
    aws_sns as sns,
    aws_sns_subscriptions as sns_subscriptions,
)
from constructs import Construct

from .config import TopologyConfig
from .logging import get_logger

logger = get_logger(__name__)

POSTGRES_PORT = 5432

# Firehose partitions delivered objects by arrival date
ANALYTICS_PREFIX = "events/year=!{timestamp:yyyy}/month=!{timestamp:MM}/day=!{timestamp:dd}/"
ANALYTICS_ERROR_PREFIX = (
    "errors/!{firehose:error-output-type}/"
    "year=!{timestamp:yyyy}/month=!{timestamp:MM}/day=!{timestamp:dd}/"
)


class TopologyStack(Stack):
    """
    Declares the full Harbor topology.

    All inputs come from TopologyConfig; pass one explicitly or let the
    stack resolve it from CDK context and the environment.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: TopologyConfig | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config if config is not None else TopologyConfig.from_scope(self)
        config = self.config
        prefix = config.resource_prefix

        # =================================================================
        # Network
        # =================================================================

        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            ip_addresses=ec2.IpAddresses.cidr(config.vpc_cidr),
            max_azs=2,
            nat_gateways=1,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Isolated",
                    subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
                    cidr_mask=24,
                ),
            ],
        )

        # =================================================================
        # Security Groups
        # =================================================================

        self.load_balancer_security_group = ec2.SecurityGroup(
            self,
            "LoadBalancerSG",
            vpc=self.vpc,
            description="Security group for the public load balancer",
            allow_all_outbound=True,
        )
        self.load_balancer_security_group.add_ingress_rule(
            peer=ec2.Peer.any_ipv4(),
            connection=ec2.Port.tcp(443),
            description="HTTPS from anywhere",
        )
        self.load_balancer_security_group.add_ingress_rule(
            peer=ec2.Peer.any_ipv4(),
            connection=ec2.Port.tcp(80),
            description="HTTP from anywhere (redirected to HTTPS)",
        )

        self.service_security_group = ec2.SecurityGroup(
            self,
            "ServiceSG",
            vpc=self.vpc,
            description="Security group for the Fargate service",
            allow_all_outbound=True,
        )
        self.service_security_group.add_ingress_rule(
            peer=self.load_balancer_security_group,
            connection=ec2.Port.tcp(config.container_port),
            description="Load balancer to target",
        )

        self.proxy_security_group = ec2.SecurityGroup(
            self,
            "DatabaseProxySG",
            vpc=self.vpc,
            description="Security group for the RDS Proxy",
            allow_all_outbound=True,
        )
        self.proxy_security_group.add_ingress_rule(
            peer=self.service_security_group,
            connection=ec2.Port.tcp(POSTGRES_PORT),
            description="Service to database proxy",
        )

        self.database_security_group = ec2.SecurityGroup(
            self,
            "DatabaseSG",
            vpc=self.vpc,
            description="Security group for Aurora PostgreSQL",
            allow_all_outbound=False,
        )
        self.database_security_group.add_ingress_rule(
            peer=self.proxy_security_group,
            connection=ec2.Port.tcp(POSTGRES_PORT),
            description="Database proxy to cluster",
        )

        # =================================================================
        # DNS & Certificate
        # =================================================================

        if config.hosted_zone_id:
            self.hosted_zone = route53.HostedZone.from_hosted_zone_attributes(
                self,
                "HostedZone",
                hosted_zone_id=config.hosted_zone_id,
                zone_name=config.domain_name,
            )
        else:
            # Resolved by the CDK CLI at synth time and cached in cdk.context.json
            self.hosted_zone = route53.HostedZone.from_lookup(
                self,
                "HostedZone",
                domain_name=config.domain_name,
            )

        self.certificate = acm.Certificate(
            self,
            "ApiCertificate",
            domain_name=config.api_domain_name,
            validation=acm.CertificateValidation.from_dns(self.hosted_zone),
        )

        # =================================================================
        # Load Balancer
        # =================================================================

        self.load_balancer = elbv2.ApplicationLoadBalancer(
            self,
            "LoadBalancer",
            vpc=self.vpc,
            internet_facing=True,
            security_group=self.load_balancer_security_group,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
        )

        self.https_listener = self.load_balancer.add_listener(
            "HttpsListener",
            port=443,
            protocol=elbv2.ApplicationProtocol.HTTPS,
            certificates=[elbv2.ListenerCertificate.from_certificate_manager(self.certificate)],
            ssl_policy=elbv2.SslPolicy.RECOMMENDED_TLS,
            open=False,
        )

        self.load_balancer.add_redirect(
            source_protocol=elbv2.ApplicationProtocol.HTTP,
            source_port=80,
            target_protocol=elbv2.ApplicationProtocol.HTTPS,
            target_port=443,
            open=False,
        )

        api_record = route53.ARecord(
            self,
            "ApiAliasRecord",
            zone=self.hosted_zone,
            record_name=config.api_subdomain,
            target=route53.RecordTarget.from_alias(
                route53_targets.LoadBalancerTarget(self.load_balancer)
            ),
        )

        # =================================================================
        # CDN
        # =================================================================

        self.static_bucket = s3.Bucket(
            self,
            "StaticAssetsBucket",
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,
        )

        # CloudFront must reach the origin by the certificate's name, not the ALB DNS name
        api_origin = origins.HttpOrigin(
            config.api_domain_name,
            protocol_policy=cloudfront.OriginProtocolPolicy.HTTPS_ONLY,
        )

        static_origin = origins.S3BucketOrigin.with_origin_access_control(self.static_bucket)

        self.distribution = cloudfront.Distribution(
            self,
            "Distribution",
            comment=f"{prefix.title()} public endpoint",
            default_behavior=cloudfront.BehaviorOptions(
                origin=api_origin,
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
                origin_request_policy=cloudfront.OriginRequestPolicy.ALL_VIEWER_EXCEPT_HOST_HEADER,
                allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
            ),
            additional_behaviors={
                "/static/*": cloudfront.BehaviorOptions(
                    origin=static_origin,
                    viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                    cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
                    allowed_methods=cloudfront.AllowedMethods.ALLOW_GET_HEAD_OPTIONS,
                ),
            },
            http_version=cloudfront.HttpVersion.HTTP2_AND_3,
            price_class=cloudfront.PriceClass.PRICE_CLASS_100,  # North America + Europe
        )
        self.distribution.node.add_dependency(api_record)

        public_url = f"https://{self.distribution.distribution_domain_name}"

        # =================================================================
        # Identity
        # =================================================================

        self.user_pool = cognito.UserPool(
            self,
            "UserPool",
            user_pool_name=f"{prefix}-users",
            self_sign_up_enabled=True,
            sign_in_aliases=cognito.SignInAliases(email=True),
            auto_verify=cognito.AutoVerifiedAttrs(email=True),
            standard_attributes=cognito.StandardAttributes(
                email=cognito.StandardAttribute(required=True, mutable=True),
            ),
            password_policy=cognito.PasswordPolicy(
                min_length=12,
                require_lowercase=True,
                require_uppercase=True,
                require_digits=True,
                require_symbols=True,
            ),
            account_recovery=cognito.AccountRecovery.EMAIL_ONLY,
            removal_policy=RemovalPolicy.RETAIN,
        )

        self.user_pool_client = self.user_pool.add_client(
            "WebClient",
            user_pool_client_name=f"{prefix}-web",
            generate_secret=False,
            auth_flows=cognito.AuthFlow(user_srp=True),
            prevent_user_existence_errors=True,
            o_auth=cognito.OAuthSettings(
                flows=cognito.OAuthFlows(authorization_code_grant=True),
                scopes=[
                    cognito.OAuthScope.OPENID,
                    cognito.OAuthScope.EMAIL,
                    cognito.OAuthScope.PROFILE,
                ],
                callback_urls=[f"{public_url}/auth/callback"],
                logout_urls=[f"{public_url}/"],
            ),
            access_token_validity=Duration.hours(1),
            id_token_validity=Duration.hours(1),
            refresh_token_validity=Duration.days(30),
        )

        # =================================================================
        # Analytics Pipeline
        # =================================================================

        self.analytics_bucket = s3.Bucket(
            self,
            "AnalyticsBucket",
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            enforce_ssl=True,
            versioned=True,
            removal_policy=RemovalPolicy.RETAIN,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="InfrequentAccessAfter30Days",
                    transitions=[
                        s3.Transition(
                            storage_class=s3.StorageClass.INFREQUENT_ACCESS,
                            transition_after=Duration.days(30),
                        )
                    ],
                    noncurrent_version_expiration=Duration.days(30),
                ),
            ],
        )

        self.analytics_stream = kinesis.Stream(
            self,
            "AnalyticsStream",
            stream_name=f"{prefix}-analytics",
            stream_mode=kinesis.StreamMode.ON_DEMAND,
            retention_period=Duration.hours(config.analytics_retention_hours),
            encryption=kinesis.StreamEncryption.MANAGED,
        )

        delivery_role = iam.Role(
            self,
            "AnalyticsDeliveryRole",
            assumed_by=iam.ServicePrincipal("firehose.amazonaws.com"),
            description="Allows Firehose to read the analytics stream and write to S3",
        )
        self.analytics_stream.grant_read(delivery_role)
        self.analytics_bucket.grant_read_write(delivery_role)

        delivery_log_group = logs.LogGroup(
            self,
            "AnalyticsDeliveryLogs",
            retention=config.log_retention,
            removal_policy=RemovalPolicy.DESTROY,
        )
        delivery_log_stream = delivery_log_group.add_stream("S3Delivery")
        delivery_log_group.grant_write(delivery_role)

        delivery = firehose.CfnDeliveryStream
        source = delivery.KinesisStreamSourceConfigurationProperty(
            kinesis_stream_arn=self.analytics_stream.stream_arn,
            role_arn=delivery_role.role_arn,
        )
        destination = delivery.ExtendedS3DestinationConfigurationProperty(
            bucket_arn=self.analytics_bucket.bucket_arn,
            role_arn=delivery_role.role_arn,
            prefix=ANALYTICS_PREFIX,
            error_output_prefix=ANALYTICS_ERROR_PREFIX,
            compression_format="GZIP",
            buffering_hints=delivery.BufferingHintsProperty(
                interval_in_seconds=300,
                size_in_m_bs=64,
            ),
            cloud_watch_logging_options=delivery.CloudWatchLoggingOptionsProperty(
                enabled=True,
                log_group_name=delivery_log_group.log_group_name,
                log_stream_name=delivery_log_stream.log_stream_name,
            ),
        )
        self.delivery_stream = delivery(
            self,
            "AnalyticsDeliveryStream",
            delivery_stream_name=f"{prefix}-analytics",
            delivery_stream_type="KinesisStreamAsSource",
            kinesis_stream_source_configuration=source,
            extended_s3_destination_configuration=destination,
        )
        # Firehose validates its role on creation, so the policy must exist first
        self.delivery_stream.node.add_dependency(delivery_role)

        self.analytics_database = glue.CfnDatabase(
            self,
            "AnalyticsDatabase",
            catalog_id=self.account,
            database_input=glue.CfnDatabase.DatabaseInputProperty(
                name=f"{prefix}_analytics".replace("-", "_"),
                description=f"{prefix.title()} analytics events delivered by Firehose",
                location_uri=f"s3://{self.analytics_bucket.bucket_name}/events/",
            ),
        )

        # =================================================================
        # Database
        # =================================================================

        self.database = rds.DatabaseCluster(
            self,
            "Database",
            engine=rds.DatabaseClusterEngine.aurora_postgres(
                version=rds.AuroraPostgresEngineVersion.VER_16_4,
            ),
            serverless_v2_min_capacity=config.database_min_acu,
            serverless_v2_max_capacity=config.database_max_acu,
            writer=rds.ClusterInstance.serverless_v2("writer"),
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            security_groups=[self.database_security_group],
            default_database_name=config.database_name,
            removal_policy=RemovalPolicy.SNAPSHOT,
            deletion_protection=config.deletion_protection,
            backup=rds.BackupProps(retention=Duration.days(config.backup_retention_days)),
            storage_encrypted=True,
            cloudwatch_logs_exports=["postgresql"],
            cloudwatch_logs_retention=config.log_retention,
        )

        self.database_proxy = rds.DatabaseProxy(
            self,
            "DatabaseProxy",
            proxy_target=rds.ProxyTarget.from_cluster(self.database),
            secrets=[self.database.secret],
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            security_groups=[self.proxy_security_group],
            require_tls=True,
            idle_client_timeout=Duration.minutes(5),
            max_connections_percent=90,
            max_idle_connections_percent=10,
        )

        # =================================================================
        # Container Service
        # =================================================================

        self.cluster = ecs.Cluster(
            self,
            "Cluster",
            vpc=self.vpc,
            container_insights_v2=ecs.ContainerInsights.ENABLED,
        )

        self.service_log_group = logs.LogGroup(
            self,
            "ServiceLogs",
            log_group_name=f"/ecs/{prefix}-web",
            retention=config.log_retention,
            removal_policy=RemovalPolicy.DESTROY,
        )

        self.task_definition = ecs.FargateTaskDefinition(
            self,
            "TaskDefinition",
            family=f"{prefix}-web",
            cpu=config.task_cpu,
            memory_limit_mib=config.task_memory_mib,
        )

        self.container = self.task_definition.add_container(
            "web",
            image=ecs.ContainerImage.from_registry(config.container_image),
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix="web",
                log_group=self.service_log_group,
            ),
            environment={
                # Proxy endpoint is only known once the orchestrator has created it
                "DB_HOST": self.database_proxy.endpoint,
                "DB_PORT": str(POSTGRES_PORT),
                "DB_NAME": config.database_name,
                "COGNITO_USER_POOL_ID": self.user_pool.user_pool_id,
                "COGNITO_CLIENT_ID": self.user_pool_client.user_pool_client_id,
                "ANALYTICS_STREAM_NAME": self.analytics_stream.stream_name,
                "PUBLIC_URL": public_url,
            },
            secrets={
                "DB_USER": ecs.Secret.from_secrets_manager(self.database.secret, field="username"),
                "DB_PASSWORD": ecs.Secret.from_secrets_manager(
                    self.database.secret, field="password"
                ),
            },
            port_mappings=[
                ecs.PortMapping(container_port=config.container_port, protocol=ecs.Protocol.TCP)
            ],
        )

        self.analytics_stream.grant_write(self.task_definition.task_role)

        self.service = ecs.FargateService(
            self,
            "Service",
            cluster=self.cluster,
            task_definition=self.task_definition,
            desired_count=config.desired_count,
            security_groups=[self.service_security_group],
            assign_public_ip=False,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            health_check_grace_period=Duration.seconds(60),
            min_healthy_percent=100,
            max_healthy_percent=200,
            circuit_breaker=ecs.DeploymentCircuitBreaker(rollback=True),
            enable_execute_command=True,
        )

        self.target_group = self.https_listener.add_targets(
            "ServiceTargets",
            port=config.container_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            targets=[self.service],
            deregistration_delay=Duration.seconds(30),
            health_check=elbv2.HealthCheck(
                path=config.health_check_path,
                healthy_http_codes="200-399",
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
            ),
        )

        scaling = self.service.auto_scale_task_count(
            min_capacity=config.desired_count,
            max_capacity=config.max_capacity,
        )
        scaling.scale_on_cpu_utilization(
            "CpuScaling",
            target_utilization_percent=70,
            scale_in_cooldown=Duration.seconds(60),
            scale_out_cooldown=Duration.seconds(60),
        )
        scaling.scale_on_memory_utilization(
            "MemoryScaling",
            target_utilization_percent=80,
            scale_in_cooldown=Duration.seconds(60),
            scale_out_cooldown=Duration.seconds(60),
        )

        # =================================================================
        # Observability
        # =================================================================

        dashboard_name = f"{prefix}-operations"
        self._declare_observability(dashboard_name)

        # =================================================================
        # Outputs
        # =================================================================

        CfnOutput(
            self,
            "PublicEndpoint",
            value=public_url,
            description="Public CloudFront endpoint",
        )

        CfnOutput(
            self,
            "ApiEndpoint",
            value=f"https://{config.api_domain_name}",
            description="API endpoint served by the load balancer",
        )

        CfnOutput(
            self,
            "UserPoolId",
            value=self.user_pool.user_pool_id,
            description="Cognito user pool ID",
            export_name=f"{prefix.title()}UserPoolId",
        )

        CfnOutput(
            self,
            "UserPoolClientId",
            value=self.user_pool_client.user_pool_client_id,
            description="Cognito web client ID",
        )

        CfnOutput(
            self,
            "DatabaseEndpoint",
            value=self.database.cluster_endpoint.hostname,
            description="Aurora cluster writer endpoint",
            export_name=f"{prefix.title()}DatabaseEndpoint",
        )

        CfnOutput(
            self,
            "DatabaseProxyEndpoint",
            value=self.database_proxy.endpoint,
            description="RDS Proxy endpoint used by the service",
        )

        CfnOutput(
            self,
            "AnalyticsStreamName",
            value=self.analytics_stream.stream_name,
            description="Kinesis stream receiving analytics events",
        )

        CfnOutput(
            self,
            "AnalyticsBucketName",
            value=self.analytics_bucket.bucket_name,
            description="S3 bucket receiving delivered analytics events",
        )

        CfnOutput(
            self,
            "DashboardUrl",
            value=(
                f"https://{self.region}.console.aws.amazon.com/cloudwatch/home"
                f"?region={self.region}#dashboards:name={dashboard_name}"
            ),
            description="CloudWatch Dashboard URL",
        )

        logger.info(
            "topology_declared",
            stack=construct_id,
            domain_name=config.domain_name,
            container_image=config.container_image,
            desired_count=config.desired_count,
        )

    def _declare_observability(self, dashboard_name: str) -> None:
        """Alarm topic, alarms and the operations dashboard."""
        config = self.config
        prefix = config.resource_prefix

        self.alarm_topic = sns.Topic(
            self,
            "AlarmTopic",
            topic_name=f"{prefix}-alarms",
            display_name=f"{prefix.title()} Infrastructure Alarms",
        )
        if config.alarm_email:
            self.alarm_topic.add_subscription(
                sns_subscriptions.EmailSubscription(config.alarm_email)
            )
        alarm_action = cw_actions.SnsAction(self.alarm_topic)

        # Metrics
        lb_dimensions = {"LoadBalancer": self.load_balancer.load_balancer_full_name}
        request_count = self._metric("AWS/ApplicationELB", "RequestCount", lb_dimensions, "Sum")
        elb_5xx = self._metric("AWS/ApplicationELB", "HTTPCode_ELB_5XX_Count", lb_dimensions, "Sum")
        target_5xx = self._metric(
            "AWS/ApplicationELB", "HTTPCode_Target_5XX_Count", lb_dimensions, "Sum"
        )
        latency_p50 = self._metric("AWS/ApplicationELB", "TargetResponseTime", lb_dimensions, "p50")
        latency_p99 = self._metric("AWS/ApplicationELB", "TargetResponseTime", lb_dimensions, "p99")
        healthy_hosts = self._metric(
            "AWS/ApplicationELB",
            "HealthyHostCount",
            {**lb_dimensions, "TargetGroup": self.target_group.target_group_full_name},
            "Minimum",
        )

        service_dimensions = {
            "ClusterName": self.cluster.cluster_name,
            "ServiceName": self.service.service_name,
        }
        service_cpu = self._metric("AWS/ECS", "CPUUtilization", service_dimensions, "Average")
        service_memory = self._metric("AWS/ECS", "MemoryUtilization", service_dimensions, "Average")

        db_dimensions = {"DBClusterIdentifier": self.database.cluster_identifier}
        db_cpu = self._metric("AWS/RDS", "CPUUtilization", db_dimensions, "Average")
        db_connections = self._metric("AWS/RDS", "DatabaseConnections", db_dimensions, "Average")
        db_capacity = self._metric(
            "AWS/RDS", "ServerlessDatabaseCapacity", db_dimensions, "Average"
        )

        stream_incoming = self._metric(
            "AWS/Kinesis",
            "IncomingRecords",
            {"StreamName": self.analytics_stream.stream_name},
            "Sum",
            period=Duration.minutes(5),
        )
        delivery_freshness = self._metric(
            "AWS/Firehose",
            "DeliveryToS3.DataFreshness",
            {"DeliveryStreamName": self.delivery_stream.ref},
            "Maximum",
            period=Duration.minutes(5),
        )

        # Alarms
        alarms = [
            self._alarm(
                "HighErrorRateAlarm",
                alarm_name=f"{prefix}-high-error-rate",
                description="API 5xx error rate exceeds 5% of requests",
                metric=cloudwatch.MathExpression(
                    expression="(elb5xx + target5xx) / requests * 100",
                    using_metrics={
                        "elb5xx": elb_5xx,
                        "target5xx": target_5xx,
                        "requests": request_count,
                    },
                    period=Duration.minutes(5),
                ),
                threshold=5,
                evaluation_periods=2,
            ),
            self._alarm(
                "HighLatencyAlarm",
                alarm_name=f"{prefix}-high-latency",
                description="API p99 latency exceeds 2 seconds",
                metric=latency_p99,
                threshold=2,
                evaluation_periods=3,
            ),
            self._alarm(
                "UnhealthyHostsAlarm",
                alarm_name=f"{prefix}-unhealthy-hosts",
                description="No healthy tasks behind the load balancer",
                metric=healthy_hosts,
                threshold=1,
                evaluation_periods=2,
                comparison_operator=cloudwatch.ComparisonOperator.LESS_THAN_THRESHOLD,
                treat_missing_data=cloudwatch.TreatMissingData.BREACHING,
            ),
            self._alarm(
                "ServiceHighCpuAlarm",
                alarm_name=f"{prefix}-service-high-cpu",
                description="Service CPU utilization exceeds 85%",
                metric=service_cpu,
                threshold=85,
                evaluation_periods=3,
            ),
            self._alarm(
                "ServiceHighMemoryAlarm",
                alarm_name=f"{prefix}-service-high-memory",
                description="Service memory utilization exceeds 85%",
                metric=service_memory,
                threshold=85,
                evaluation_periods=3,
            ),
            self._alarm(
                "DbHighCpuAlarm",
                alarm_name=f"{prefix}-db-high-cpu",
                description="Aurora database CPU exceeds 80%",
                metric=db_cpu,
                threshold=80,
                evaluation_periods=3,
            ),
            self._alarm(
                "AnalyticsDeliveryStaleAlarm",
                alarm_name=f"{prefix}-analytics-delivery-stale",
                description="Oldest analytics record not delivered to S3 within 15 minutes",
                metric=delivery_freshness,
                threshold=900,
                evaluation_periods=2,
            ),
        ]
        for alarm in alarms:
            alarm.add_alarm_action(alarm_action)
            alarm.add_ok_action(alarm_action)

        # Dashboard
        dashboard = cloudwatch.Dashboard(
            self,
            "Dashboard",
            dashboard_name=dashboard_name,
        )

        # Row 1: API
        dashboard.add_widgets(
            cloudwatch.GraphWidget(
                title="API Request Rate", left=[request_count], width=8, height=6
            ),
            cloudwatch.GraphWidget(
                title="API Error Rate (5xx)",
                left=[elb_5xx, target_5xx],
                width=8,
                height=6,
            ),
            cloudwatch.GraphWidget(
                title="API Latency",
                left=[latency_p50, latency_p99],
                left_y_axis=cloudwatch.YAxisProps(label="Seconds", min=0),
                width=8,
                height=6,
            ),
        )

        # Row 2: Service
        percent_axis = cloudwatch.YAxisProps(label="Percent", min=0, max=100)
        dashboard.add_widgets(
            cloudwatch.GraphWidget(
                title="Service CPU Utilization",
                left=[service_cpu],
                left_y_axis=percent_axis,
                width=8,
                height=6,
            ),
            cloudwatch.GraphWidget(
                title="Service Memory Utilization",
                left=[service_memory],
                left_y_axis=percent_axis,
                width=8,
                height=6,
            ),
            cloudwatch.GraphWidget(
                title="Healthy Host Count",
                left=[healthy_hosts],
                left_y_axis=cloudwatch.YAxisProps(label="Hosts", min=0),
                width=8,
                height=6,
            ),
        )

        # Row 3: Database and analytics
        dashboard.add_widgets(
            cloudwatch.GraphWidget(
                title="Database Connections", left=[db_connections], width=6, height=6
            ),
            cloudwatch.GraphWidget(
                title="Database CPU",
                left=[db_cpu],
                left_y_axis=percent_axis,
                width=6,
                height=6,
            ),
            cloudwatch.GraphWidget(
                title="Aurora Serverless Capacity (ACU)",
                left=[db_capacity],
                width=6,
                height=6,
            ),
            cloudwatch.GraphWidget(
                title="Analytics Pipeline",
                left=[stream_incoming],
                right=[delivery_freshness],
                width=6,
                height=6,
            ),
        )

        # Row 4: Alarm status
        dashboard.add_widgets(
            cloudwatch.AlarmStatusWidget(title="Alarm Status", alarms=alarms, width=24, height=4),
        )

    def _metric(
        self,
        namespace: str,
        metric_name: str,
        dimensions: dict[str, str],
        statistic: str,
        period: Duration | None = None,
    ) -> cloudwatch.Metric:
        return cloudwatch.Metric(
            namespace=namespace,
            metric_name=metric_name,
            dimensions_map=dimensions,
            statistic=statistic,
            period=period or Duration.minutes(1),
        )

    def _alarm(
        self,
        construct_id: str,
        *,
        alarm_name: str,
        description: str,
        metric: cloudwatch.IMetric,
        threshold: float,
        evaluation_periods: int,
        comparison_operator: cloudwatch.ComparisonOperator = (
            cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD
        ),
        treat_missing_data: cloudwatch.TreatMissingData = cloudwatch.TreatMissingData.NOT_BREACHING,
    ) -> cloudwatch.Alarm:
        return cloudwatch.Alarm(
            self,
            construct_id,
            alarm_name=alarm_name,
            alarm_description=description,
            metric=metric,
            threshold=threshold,
            evaluation_periods=evaluation_periods,
            comparison_operator=comparison_operator,
            treat_missing_data=treat_missing_data,
        )
