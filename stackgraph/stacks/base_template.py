"""
Base lab environment: a VPC with public and private subnets in two zones
(an internet gateway for the public tier, a NAT gateway per zone for the
private tier), a Microsoft managed directory whose admin password is
generated in Secrets Manager, an SSM document that joins instances to the
domain, two security groups, an instance role/profile, and a Windows jump
box joined to the domain once its subnet can reach the internet.

Values other stacks need are published to the parameter store under fixed
names (vpc-id, FQDN, InstanceRoleName, ...).
"""
from stackgraph.models.resource import GENERATED_PASSWORD, ResourceKind
from stackgraph.stack import Stack

VPC_CIDR = "10.0.0.0/16"
ANY_IPV4 = "0.0.0.0/0"
DOMAIN_NAME = "corp.local"
DOMAIN_SHORT_NAME = "CORP"
WINDOWS_AMI_PARAMETER = "/aws/service/ami-windows-latest/Windows_Server-2019-English-Full-Base"

MANAGED_POLICIES = [
    "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore",
    "arn:aws:iam::aws:policy/CloudWatchAgentServerPolicy",
    "arn:aws:iam::aws:policy/AWSDirectoryServiceFullAccess",
]


def _availability_zone(index: int) -> dict:
    return {"Fn::Select": [index, {"Fn::GetAZs": ""}]}


def _route_table(stack: Stack, subnet, vpc):
    """Route table of its own for ``subnet``, associated with it."""
    table = stack.add_resource(
        f"{subnet.name}-route-table",
        ResourceKind.ROUTE_TABLE,
        {"VpcId": vpc.ref()},
    )
    stack.add_resource(
        f"{subnet.name}-route-table-association",
        ResourceKind.ROUTE_ASSOCIATION,
        {"RouteTableId": table.ref(), "SubnetId": subnet.ref()},
    )
    return table


def _allow_vpc_ingress() -> list:
    return [{
        "IpProtocol": "-1",
        "CidrIp": VPC_CIDR,
        "Description": "Allow all trafic from the VPC",
    }]


def build_stack(name: str = "base-template") -> Stack:
    stack = Stack(name, description="Lab VPC with a managed Active Directory and a domain-joined jump box")

    # Current Windows AMI, looked up from the public SSM parameter at deploy time
    windows_image = stack.add_parameter(
        "windows-image",
        type="AWS::SSM::Parameter::Value<AWS::EC2::Image::Id>",
        default=WINDOWS_AMI_PARAMETER,
    )

    admin_secret = stack.add_resource(
        "mmad-admin-user-secret",
        ResourceKind.SECRET,
        {
            "Description": "Common Administrator password",
            "Name": "MMADAdminSecret",
            "GenerateSecretString": {
                "ExcludeCharacters": "\"@/\\",
                "PasswordLength": 30,
                "SecretStringTemplate": '{"Username":"Admin"}',
                "GenerateStringKey": "Password",
            },
        },
    )

    vpc = stack.add_resource(
        "lab-vpc",
        ResourceKind.NETWORK,
        {
            "CidrBlock": VPC_CIDR,
            "EnableDnsHostnames": True,
            "EnableDnsSupport": True,
        },
    )

    subnets = {}
    for i, (tier, public) in enumerate([("public", True), ("public", True), ("private", False), ("private", False)]):
        index = i % 2
        subnet_name = f"{tier}-subnet-{index + 1}"
        subnets[subnet_name] = stack.add_resource(
            subnet_name,
            ResourceKind.SUBNET,
            {
                "VpcId": vpc.ref(),
                "CidrBlock": f"10.0.{i}.0/24",
                "AvailabilityZone": _availability_zone(index),
                "MapPublicIpOnLaunch": public,
                "Tags": [{"Key": "Name", "Value": f"{tier.capitalize()}{index + 1}"}],
            },
        )

    # Internet access for the public tier, one NAT gateway per zone for the private tier
    gateway = stack.add_resource(
        "lab-vpc-igw",
        ResourceKind.INTERNET_GATEWAY,
        {"Tags": [{"Key": "Name", "Value": "lab-vpc"}]},
    )
    attachment = stack.add_resource(
        "lab-vpc-igw-attachment",
        ResourceKind.GATEWAY_ATTACHMENT,
        {"VpcId": vpc.ref(), "InternetGatewayId": gateway.ref()},
    )

    default_routes = {}
    nat_gateways = []
    for index in (1, 2):
        subnet = subnets[f"public-subnet-{index}"]
        table = _route_table(stack, subnet, vpc)
        default_routes[subnet.name] = stack.add_resource(
            f"{subnet.name}-default-route",
            ResourceKind.ROUTE,
            {
                "RouteTableId": table.ref(),
                "DestinationCidrBlock": ANY_IPV4,
                "GatewayId": gateway.ref(),
            },
            depends_on=[attachment.name],
        )
        eip = stack.add_resource(
            f"{subnet.name}-eip",
            ResourceKind.ELASTIC_IP,
            {"Domain": "vpc"},
        )
        nat_gateways.append(stack.add_resource(
            f"{subnet.name}-nat-gateway",
            ResourceKind.NAT_GATEWAY,
            {"AllocationId": eip.ref("AllocationId"), "SubnetId": subnet.ref()},
            depends_on=[default_routes[subnet.name].name],
        ))

    for index, nat in zip((1, 2), nat_gateways):
        subnet = subnets[f"private-subnet-{index}"]
        table = _route_table(stack, subnet, vpc)
        stack.add_resource(
            f"{subnet.name}-default-route",
            ResourceKind.ROUTE,
            {
                "RouteTableId": table.ref(),
                "DestinationCidrBlock": ANY_IPV4,
                "NatGatewayId": nat.ref(),
            },
        )

    # Role for instances: Systems Manager, CloudWatch agent, directory join
    role = stack.add_resource(
        "lab-role",
        ResourceKind.ROLE,
        {
            "RoleName": "lab-role",
            "AssumeRolePolicyDocument": {
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"Service": "ec2.amazonaws.com"},
                    "Action": "sts:AssumeRole",
                }],
            },
            "ManagedPolicyArns": list(MANAGED_POLICIES),
        },
    )

    profile = stack.add_resource(
        "lab-role-profile",
        ResourceKind.INSTANCE_PROFILE,
        {
            "InstanceProfileName": "lab-role",
            "Roles": [role.ref()],
        },
    )

    directory = stack.add_resource(
        "MMAD",
        ResourceKind.DIRECTORY_SERVICE,
        {
            "Name": DOMAIN_NAME,
            "ShortName": DOMAIN_SHORT_NAME,
            "Password": admin_secret.ref(GENERATED_PASSWORD),
            "VpcSettings": {
                "SubnetIds": [subnets["private-subnet-1"].ref(), subnets["private-subnet-2"].ref()],
                "VpcId": vpc.ref(),
            },
            "Edition": "Standard",
        },
        depends_on=[admin_secret.name],
    )

    join_document = stack.add_resource(
        "mmad-ssd-doc",
        ResourceKind.AUTOMATION_DOCUMENT,
        {
            "Name": "MMAD-AD-Association",
            "Content": {
                "schemaVersion": "1.2",
                "description": "Join the instance to a MMAD domain",
                "runtimeConfig": {
                    "aws:domainJoin": {
                        "properties": {
                            "directoryId": directory.ref(),
                            "directoryName": f"{DOMAIN_SHORT_NAME}.local",
                            "dnsIpAddresses": directory.ref("DnsAddresses"),
                        },
                    },
                },
            },
        },
    )

    public_sg = stack.add_resource(
        "public-security-group",
        ResourceKind.SECURITY_GROUP,
        {
            "GroupDescription": "Public Security Group for the Jump Box",
            "GroupName": "PublicSecurityGroup",
            "VpcId": vpc.ref(),
            "SecurityGroupIngress": _allow_vpc_ingress(),
        },
    )

    private_sg = stack.add_resource(
        "private-security-group",
        ResourceKind.SECURITY_GROUP,
        {
            "GroupDescription": "Private Security Group for the SQL Servers",
            "GroupName": "PrivateSecurityGroup",
            "VpcId": vpc.ref(),
            "SecurityGroupIngress": _allow_vpc_ingress(),
        },
    )

    stack.add_resource(
        "jump-box-instance",
        ResourceKind.COMPUTE_INSTANCE,
        {
            "InstanceType": "t3.large",
            "ImageId": windows_image.value,
            "IamInstanceProfile": profile.ref(),
            "SecurityGroupIds": [private_sg.ref()],
            "SsmAssociations": [{"DocumentName": join_document.ref()}],
            "SubnetId": subnets["public-subnet-1"].ref(),
            "Tags": [{"Key": "Name", "Value": "EC2 Jump"}],
        },
        depends_on=[join_document.name, default_routes["public-subnet-1"].name],
    )

    stack.export("vpc-id", vpc.name, description="ID For the created VPC")
    stack.export("pub-subnet-1", "public-subnet-1", description="Public Subnet 1 ID")
    stack.export("pub-subnet-2", "public-subnet-2", description="Public Subnet 2 ID")
    stack.export("private-subnet-1", "private-subnet-1", description="Private Subnet 1 ID")
    stack.export("private-subnet-2", "private-subnet-2", description="Private Subnet 2 ID")
    stack.export_value("FQDN", DOMAIN_NAME, description="Fully Qualified Domain Name")
    stack.export_value("Domain", DOMAIN_SHORT_NAME, description="Short Domain Name")
    stack.export("MMADJoinDoc", join_document.name,
                 description="Document to use to domain join to the pre-created domain")
    stack.export("InstanceRoleName", role.name, description="Preconfigured Instance Role")
    stack.export("PublicSG", public_sg.name, description="Public Security Group for Jump Boxes")
    stack.export("PrivateSG", private_sg.name, description="Private Security Group For Servers")

    return stack
