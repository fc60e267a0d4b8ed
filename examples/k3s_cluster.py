"""Example: plan a small k3s cluster network.

Declares a VPC with a public and a private subnet, internet and NAT gateways,
route tables, a security group, a key pair, an Ubuntu image lookup, an nginx
host, a k3s master and a configurable number of workers. Prints the
serialized plan, or applies it against fake provisioners with --apply.

The security group's ingress sources have no defaults and must be given:

    python examples/k3s_cluster.py --ssh-cidr 203.0.113.0/24 --cluster-cidr 172.16.0.0/16
"""

import argparse
import itertools

from stackplan import (
    Executor,
    GraphBuilder,
    StackContext,
    Variable,
    Variables,
    cidrsubnet,
    dump_plan,
    emit,
    join,
    ref,
)
from stackplan.errors import PlanError
from stackplan.log import configure_logging
from stackplan.node import ECHOED_OUTPUTS, KIND_OUTPUTS, ResourceKind

NGINX_USER_DATA = """#!/bin/bash
apt-get update
apt-get install -y nginx
systemctl restart nginx
"""

MASTER_USER_DATA = """#!/bin/bash
apt-get update
apt-get install -y curl
curl -sfL https://get.k3s.io | sh -
"""

WORKER_USER_DATA = """#!/bin/bash
apt-get update
apt-get install -y curl
"""


def declare_cluster(ctx: StackContext) -> None:
    """Declare the cluster resources into `ctx`. Variables must be resolved."""
    region = ctx.var("aws_region")

    vpc = ctx.network(
        "k3s_cluster_vpc",
        cidr_block="172.16.0.0/16",
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={"project": "k3s"},
    )
    private_subnet = ctx.subnet(
        "k3s_private_subnet",
        vpc_id=vpc.ref("id"),
        cidr_block=cidrsubnet(vpc.ref("cidr_block"), 8, 3),
        availability_zone=join(region, "a"),
    )
    public_subnet = ctx.subnet(
        "k3s_public_subnet",
        vpc_id=vpc.ref("id"),
        cidr_block=cidrsubnet(vpc.ref("cidr_block"), 8, 2),
        availability_zone=join(region, "b"),
        map_public_ip_on_launch=True,
    )
    gateway = ctx.gateway(
        "gw",
        type="internet",
        vpc_id=vpc.ref("id"),
        tags={"cluster": "k3s internet gateway"},
    )
    nat_eip = ctx.elastic_ip("aws_eip_nat", domain="vpc")
    nat = ctx.gateway(
        "main",
        type="nat",
        allocation_id=nat_eip.ref("id"),
        subnet_id=public_subnet.ref("id"),
        depends_on=[gateway],
    )
    public_routes = ctx.route_table(
        "public",
        vpc_id=vpc.ref("id"),
        route=[{"cidr_block": "0.0.0.0/0", "gateway_id": gateway.ref("id")}],
    )
    private_routes = ctx.route_table(
        "private",
        vpc_id=vpc.ref("id"),
        route=[{"cidr_block": "0.0.0.0/0", "gateway_id": nat.ref("id")}],
    )
    ctx.route_table_association(
        "aws_rt_assoc_public",
        subnet_id=public_subnet.ref("id"),
        route_table_id=public_routes.ref("id"),
    )
    ctx.route_table_association(
        "aws_rt_assoc_private",
        subnet_id=private_subnet.ref("id"),
        route_table_id=private_routes.ref("id"),
    )
    sg = ctx.security_group(
        "aws_sg_k3s",
        name="k3s security group",
        vpc_id=vpc.ref("id"),
        ingress=[
            {
                "from_port": 0,
                "to_port": 0,
                "protocol": "-1",
                "cidr_blocks": [ctx.var("cluster_ingress_cidr")],
            },
            {
                "from_port": 22,
                "to_port": 22,
                "protocol": "tcp",
                "cidr_blocks": [ctx.var("admin_ssh_cidr")],
            },
        ],
        egress=[
            {"from_port": 0, "to_port": 0, "protocol": "-1", "cidr_blocks": ["0.0.0.0/0"]}
        ],
    )
    key_pair = ctx.key_pair(
        "key_pair",
        key_name="key_pair_wsl",
        public_key=ctx.var("ssh_public_key"),
    )
    ami = ctx.ami_lookup(
        "Ubuntu2404Ami",
        most_recent=True,
        owners=["099720109477"],
        filter=[
            {"name": "name", "values": ["*ubuntu-noble-24.04-amd64-server-*"]},
            {"name": "architecture", "values": ["x86_64"]},
            {"name": "virtualization-type", "values": ["hvm"]},
        ],
    )

    common = {
        "ami": ami.ref("id"),
        "instance_type": "t3.micro",
        "key_name": key_pair.ref("id"),
        "vpc_security_group_ids": [sg.ref("id")],
    }
    nginx = ctx.instance(
        "nginx",
        subnet_id=public_subnet.ref("id"),
        associate_public_ip_address=True,
        user_data=NGINX_USER_DATA,
        depends_on=[gateway],
        **common,
    )
    master = ctx.instance(
        "k3s_master",
        subnet_id=private_subnet.ref("id"),
        user_data=MASTER_USER_DATA,
        depends_on=[nat],
        **common,
    )
    workers = ctx.instance(
        "k3s_workers",
        subnet_id=private_subnet.ref("id"),
        user_data=WORKER_USER_DATA,
        count=ctx.var("k3s_count"),
        depends_on=[nat, master],
        **common,
    )

    ctx.output("public_ip_nginx", nginx.ref("public_ip"))
    ctx.output("k3s_master_private_ip", master.ref("private_ip"))
    ctx.output("k3s_worker_private_ip", ref(workers, "private_ip"))


def cluster_variables() -> Variables:
    variables = Variables()
    variables.declare(Variable("aws_region", default="eu-north-1"))
    variables.declare(Variable("k3s_count", type="number", default=2))
    variables.declare(Variable("ssh_public_key", default="ssh-rsa AAAAexample"))
    variables.declare(
        Variable(
            "cluster_ingress_cidr",
            description="Source block allowed on every port and protocol",
        )
    )
    variables.declare(
        Variable("admin_ssh_cidr", description="Source block allowed on SSH (22/tcp)")
    )
    return variables


def fake_provisioners() -> dict:
    """Provisioners returning made-up values for every output of their kind."""
    counter = itertools.count(1)

    def for_kind(kind):
        def provision(resource_id, **attributes):
            n = next(counter)
            made_up = {
                "id": f"{resource_id}-{n:04d}",
                "arn": f"arn:fake:{resource_id}",
                "private_ip": f"172.16.3.{n}",
                "public_ip": f"198.51.100.{n}",
            }
            echoed = ECHOED_OUTPUTS.get(kind, ())
            return {
                name: made_up.get(name, f"{resource_id}-{name}")
                for name in KIND_OUTPUTS[kind]
                if name not in echoed or name not in attributes
            }

        return provision

    return {kind: for_kind(kind) for kind in ResourceKind if kind is not ResourceKind.OUTPUT}


def main():
    parser = argparse.ArgumentParser(description="Plan a k3s cluster network")
    parser.add_argument("--ssh-cidr", help="Source CIDR for SSH access")
    parser.add_argument("--cluster-cidr", help="Source CIDR for all-protocol ingress")
    parser.add_argument("--workers", type=int, default=None, help="Worker count (default: 2)")
    parser.add_argument("--region", default=None, help="Region (default: eu-north-1)")
    parser.add_argument("--apply", action="store_true", help="Apply with fake provisioners")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    args = parser.parse_args()

    configure_logging(args.log_level)

    overrides = {}
    if args.ssh_cidr:
        overrides["admin_ssh_cidr"] = args.ssh_cidr
    if args.cluster_cidr:
        overrides["cluster_ingress_cidr"] = args.cluster_cidr
    if args.workers is not None:
        overrides["k3s_count"] = args.workers
    if args.region:
        overrides["aws_region"] = args.region

    variables = cluster_variables()
    try:
        values = variables.resolve(overrides)
        ctx = StackContext(
            variables,
            provider={"region": values["aws_region"]},
            default_tags={"project": "k3s", "owner": "grigorenko"},
        )
        declare_cluster(ctx)
        plan = GraphBuilder().build(ctx)
    except PlanError as e:
        print(f"Plan failed [{e.rule}]: {e}")
        raise SystemExit(1) from e

    if not args.apply:
        print(dump_plan(plan, indent=2))
        return

    result = Executor(fake_provisioners()).apply(emit(plan))
    print(f"Provisioned: {len(result.outputs)}")
    for name, value in result.values.items():
        print(f"{name} = {value}")


if __name__ == "__main__":
    main()
