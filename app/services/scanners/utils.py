from typing import List, Dict


def format_tags(tags_list: List[Dict[str, str]]) -> Dict[str, str]:
    """Converts the AWS tag list format to a simple key-value dictionary."""
    if not tags_list:
        return {}
    return {tag['Key']: tag['Value'] for tag in tags_list if 'Key' in tag and 'Value' in tag}


def region_error(region: str, error: BaseException) -> str:
    """Per-region error string surfaced in scan metrics."""
    message = str(error) or type(error).__name__
    return f"{region}: {message}"
