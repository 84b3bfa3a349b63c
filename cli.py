from src.lambdas.function_deployer.config import ConfigurationError, load_config
from src.lambdas.function_deployer.dispatcher import FunctionUpdater, dispatch
from src.lambdas.function_deployer.locator import locate_artifact
from src.lambdas.function_deployer.registry import parse_targets
from src.lambdas.function_deployer.reporter import PipelineReporter
from src.lambdas.function_deployer import aws_clients
from src.models.deployment import to_dict
import boto3
import json
import argparse
import logging
import sys


# run pip install -e .
# then fndeploy plan / fndeploy deploy
def _save_to_json(data: dict, filename: str) -> bool:
    try:
        with open(filename, 'w') as f:
            json.dump(data, f, indent=2, default=str)
        return True
    except OSError as e:
        print(f"An error occured saving results as json: {e}")
        return False


def _resolve(args):
    """
    command line flags win, environment variables (same names the
    Lambda reads) fill the gaps
    """
    cfg = load_config()
    version = args.version
    if not version and not (args.bucket or args.key):
        version = cfg.version
    artifact = locate_artifact(args.bucket or cfg.bucket,
                               args.key or cfg.key,
                               version)
    targets = parse_targets(args.functions if args.functions is not None else cfg.functions,
                            allow_empty=cfg.allow_empty_targets)
    return cfg, artifact, targets


def plan_deployment(args):
    """
    show what a deploy would touch, without calling AWS
    """
    try:
        _, artifact, targets = _resolve(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    print(json.dumps({"artifact": to_dict(artifact), "targets": list(targets)}, indent=2))


def deploy_functions(args):
    """
    update, wait for and publish every target, then print the outcome
    """
    try:
        cfg, artifact, targets = _resolve(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    session_kwargs = {}
    if args.profile:
        session_kwargs['profile_name'] = args.profile
    if args.region:
        session_kwargs['region_name'] = args.region
    session = boto3.Session(**session_kwargs)

    updater = FunctionUpdater(
        aws_clients.lambda_(session),
        description=cfg.description,
        waiter_delay=cfg.waiter_delay,
        waiter_max_attempts=cfg.waiter_max_attempts,
        max_retries=cfg.max_retries,
    )
    check = args.check_artifact or cfg.check_artifact
    result = dispatch(artifact, targets, updater,
                      check_artifact=check,
                      allow_empty=cfg.allow_empty_targets,
                      s3_client=aws_clients.s3(session) if check else None)
    signal = PipelineReporter().report(result)

    for outcome in result.outcomes:
        suffix = f"version {outcome.version}" if outcome.ok else outcome.detail
        print(f"{outcome.status.value:<8} {outcome.target}: {suffix}")
    print(signal.message)

    if args.output:
        _save_to_json(result.to_dict(), args.output)
    if result.failed:
        sys.exit(1)


def _add_package_args(parser):
    parser.add_argument('--bucket', '-b', help='Deployment package bucket (default: $DEPLOYMENT_PACKAGE_BUCKET)')
    parser.add_argument('--key', '-k', help='Deployment package key (default: $DEPLOYMENT_PACKAGE_KEY)')
    parser.add_argument('--version', help='S3 object version of the package')
    parser.add_argument('--functions', '-f', help='Comma-separated functions (default: $FUNCTIONS_TO_DEPLOY)')


def main():
    parser = argparse.ArgumentParser(
        prog='fndeploy',
        description='Roll a deployment package out from S3 to a list of '
        '          Lambda functions: update code, wait, publish a version.'
    )

    # one subparser per action
    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands'
    )

    plan_parser = subparsers.add_parser(
        'plan',
        help='Print the resolved package and target functions'
    )
    _add_package_args(plan_parser)
    plan_parser.set_defaults(func=plan_deployment)

    deploy_parser = subparsers.add_parser(
        'deploy',
        help='Deploy the package to every target function'
    )
    _add_package_args(deploy_parser)
    deploy_parser.add_argument(
        '--check-artifact',
        action='store_true',
        help='Verify the package exists in S3 before touching any function'
    )
    deploy_parser.add_argument('--region', help='AWS region')
    deploy_parser.add_argument('--profile', help='AWS profile')
    deploy_parser.add_argument(
        '--output',
        '-o',
        help='Write outcomes as JSON to this file'
    )
    deploy_parser.set_defaults(func=deploy_functions)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    # execute the passed function
    args.func(args)


if __name__ == '__main__':
    main()
